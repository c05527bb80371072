"""
Audit Logger

DESIGN DECISION: Every significant action on the ledger is logged.
This provides:
1. Complete traceability of remote writes
2. Debugging capability for failed loads and migrations
3. The only record of dropped fire-and-forget writes

The audit logger:
- Is async so it can be awaited inline by the async core
- Never raises (a logging failure must not break a user operation)
- Supports correlation IDs to trace related events
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from billetera.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Writes every event to the structured local log at the event's severity.
    Keeps the most recent events in memory so callers (and tests) can inspect
    what happened during a session.
    """

    def __init__(self, history_size: int = 500):
        self._logger = structlog.get_logger("billetera.audit")
        self._history: list[AuditEvent] = []
        self._history_size = history_size

    @property
    def events(self) -> list[AuditEvent]:
        """Recent events, oldest first."""
        return list(self._history)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written; never raises.
        """
        self._history.append(event)
        del self._history[:-self._history_size]

        log_dict = event.to_log_dict()
        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log failure but don't raise
            structlog.get_logger().error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

        return True

    async def log_auth_failed(self, code: Optional[str], message: str) -> None:
        await self.log(AuditEventBuilder.auth_failed(code=code, message=message))

    async def log_signed_out(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.signed_out(user_id=user_id))

    async def log_session_loaded(
        self,
        user_id: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log a completed ledger load."""
        await self.log(AuditEventBuilder.session_loaded(
            user_id=user_id,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_session_load_failed(
        self,
        user_id: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log an aborted ledger load."""
        await self.log(AuditEventBuilder.session_load_failed(
            user_id=user_id,
            stage=stage,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_profile_created(self, user_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.profile_created(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_profile_backfilled(
        self,
        user_id: str,
        groups: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.profile_backfilled(
            user_id=user_id,
            groups=groups,
            correlation_id=correlation_id,
        ))

    async def log_legacy_migration_committed(
        self,
        user_id: str,
        migrated: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.legacy_migration_committed(
            user_id=user_id,
            migrated=migrated,
            skipped=skipped,
            correlation_id=correlation_id,
        ))

    async def log_legacy_migration_failed(
        self,
        user_id: str,
        pending: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.legacy_migration_failed(
            user_id=user_id,
            pending=pending,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_transaction_added(
        self,
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_added(
            user_id=user_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: str,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_acquisition_deleted(
        self,
        user_id: str,
        acquisition_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.acquisition_deleted(
            user_id=user_id,
            acquisition_id=acquisition_id,
            correlation_id=correlation_id,
        ))

    async def log_delete_prompted(
        self,
        user_id: str,
        target_id: str,
        is_acquisition: bool,
    ) -> None:
        await self.log(AuditEventBuilder.delete_prompted(
            user_id=user_id,
            target_id=target_id,
            is_acquisition=is_acquisition,
        ))

    async def log_delete_cancelled(self, user_id: str, target_id: str) -> None:
        await self.log(AuditEventBuilder.delete_cancelled(
            user_id=user_id,
            target_id=target_id,
        ))

    async def log_ledger_reset(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_reset(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_mutation_failed(
        self,
        user_id: str,
        operation: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected remote mutation."""
        await self.log(AuditEventBuilder.mutation_failed(
            user_id=user_id,
            operation=operation,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_group_persist_failed(
        self,
        user_id: str,
        group: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.group_persist_failed(
            user_id=user_id,
            group=group,
            error_message=error_message,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a sign-in load).
    Pass it through all subsequent operations.
    """
    return uuid4()
