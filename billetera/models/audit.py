"""
Audit Models for Billetera

Every significant action on a user's ledger is logged for audit purposes.
This provides:
1. Traceability of every remote write the core issued
2. Debugging information when a load, migration or mutation fails
3. A record of the fire-and-forget writes whose failures are never surfaced

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the session lifecycle and every mutation has its own type.
    """
    # Authentication
    AUTH_FAILED = "auth_failed"
    SIGNED_OUT = "signed_out"

    # Session load
    SESSION_LOADED = "session_loaded"
    SESSION_LOAD_FAILED = "session_load_failed"
    PROFILE_CREATED = "profile_created"
    PROFILE_BACKFILLED = "profile_backfilled"
    LEGACY_MIGRATION_COMMITTED = "legacy_migration_committed"
    LEGACY_MIGRATION_FAILED = "legacy_migration_failed"

    # Mutations
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    ACQUISITION_DELETED = "acquisition_deleted"
    DELETE_PROMPTED = "delete_prompted"
    DELETE_CANCELLED = "delete_cancelled"
    LEDGER_RESET = "ledger_reset"
    MUTATION_FAILED = "mutation_failed"

    # Persistence of ledger groups
    GROUP_PERSIST_FAILED = "group_persist_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - whose ledger, which entity
    user_id: Optional[str] = Field(
        default=None,
        description="uid of the ledger owner"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'acquisition', 'group')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store id, numeric acquisition id or group name"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one load)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.session_loaded(uid, 12, correlation_id)
        event = AuditEventBuilder.transaction_added(uid, record_id, "gasto", "300")
    """

    @staticmethod
    def auth_failed(code: Optional[str], message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_FAILED,
            severity=AuditSeverity.WARNING,
            description="Authentication failed",
            error_message=message,
            details={"code": code},
            is_user_action=True,
        )

    @staticmethod
    def signed_out(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            user_id=user_id,
            description="Session closed, local ledger cleared",
        )

    @staticmethod
    def session_loaded(
        user_id: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_LOADED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Ledger loaded with {transaction_count} transactions",
            details={"transaction_count": transaction_count},
        )

    @staticmethod
    def session_load_failed(
        user_id: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Ledger load failed while trying to {stage}",
            error_message=error_message,
            details={"stage": stage},
        )

    @staticmethod
    def profile_created(user_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_CREATED,
            user_id=user_id,
            entity_type="profile",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="First sign-in: profile document seeded with defaults",
        )

    @staticmethod
    def profile_backfilled(
        user_id: str,
        groups: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_BACKFILLED,
            user_id=user_id,
            entity_type="profile",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Missing fields seeded with defaults: {', '.join(groups)}",
            details={"groups": groups},
        )

    @staticmethod
    def legacy_migration_committed(
        user_id: str,
        migrated: int,
        skipped: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_MIGRATION_COMMITTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Moved {migrated} inline transactions to the record collection",
            details={"migrated": migrated, "skipped": skipped},
        )

    @staticmethod
    def legacy_migration_failed(
        user_id: str,
        pending: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_MIGRATION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Legacy transaction migration rejected; nothing was applied",
            error_message=error_message,
            details={"pending": pending},
        )

    @staticmethod
    def transaction_added(
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction added: {transaction_type} {amount}",
            details={"type": transaction_type, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: str,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction edited",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def acquisition_deleted(
        user_id: str,
        acquisition_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACQUISITION_DELETED,
            user_id=user_id,
            entity_type="acquisition",
            entity_id=str(acquisition_id),
            correlation_id=correlation_id,
            description="Acquisition removed from the savings list",
            is_user_action=True,
        )

    @staticmethod
    def delete_prompted(
        user_id: str,
        target_id: str,
        is_acquisition: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETE_PROMPTED,
            user_id=user_id,
            entity_type="acquisition" if is_acquisition else "transaction",
            entity_id=target_id,
            description="Deletion awaiting confirmation",
            is_user_action=True,
        )

    @staticmethod
    def delete_cancelled(user_id: str, target_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETE_CANCELLED,
            user_id=user_id,
            entity_id=target_id,
            description="Deletion cancelled by the user",
            is_user_action=True,
        )

    @staticmethod
    def ledger_reset(user_id: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RESET,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="profile",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Profile document emptied; transaction records kept",
            is_user_action=True,
        )

    @staticmethod
    def mutation_failed(
        user_id: str,
        operation: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="transaction",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Mutation failed: {operation}; local ledger unchanged",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def group_persist_failed(
        user_id: str,
        group: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_PERSIST_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="group",
            entity_id=group,
            description=f"Merge-write of '{group}' failed and was dropped",
            error_message=error_message,
        )
