"""
Persistence Reflector

Pushes ledger group changes (profile, categories, cards, wishlist,
acquisitions, paid months) to the user document as merge-writes of that one
field.

DESIGN DECISION: Each group has its own queue holding only the latest
snapshot. A single drain task per group writes snapshots one at a time, so:
1. Rapid edits to the same group coalesce into fewer writes
2. The last value set is always the last value written (no stale overwrite)
3. Different groups never wait on each other

Writes are fire-and-forget: a failed write is logged and audited, then
dropped. It is neither retried nor reported to the caller. Transactions never
pass through here.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog

from billetera.audit import AuditLogger
from billetera.models.ledger import LedgerGroup
from billetera.services.storage import DocumentStoreInterface, StorageError
from billetera.session import SessionContext, SessionController, SessionState
from billetera.store import LedgerStore

logger = structlog.get_logger(__name__)


class _PendingWrite:
    """Latest snapshot of a group, bound to the user it belongs to."""

    def __init__(self, uid: str, payload: Any):
        self.uid = uid
        self.payload = payload


class PersistenceReflector:
    """
    Mirrors group changes to ``users/{uid}`` while a session is signed in.

    Must be fed from inside a running event loop: drains are scheduled as
    asyncio tasks.
    """

    def __init__(
        self,
        store: LedgerStore,
        document_store: DocumentStoreInterface,
        session: SessionController,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._documents = document_store
        self._session = session
        self._audit_logger = audit_logger
        self._pending: dict[LedgerGroup, _PendingWrite] = {}
        self._drains: dict[LedgerGroup, asyncio.Task] = {}
        self._writes_issued = 0
        self._unsubscribers: list[Callable[[], None]] = [
            store.subscribe(self._on_group_change),
            session.on_state_change(self._on_session_state),
        ]

    @property
    def pending_groups(self) -> set[LedgerGroup]:
        """Groups with a snapshot waiting to be written."""
        return set(self._pending)

    @property
    def writes_issued(self) -> int:
        return self._writes_issued

    def _on_group_change(self, group: LedgerGroup, payload: Any) -> None:
        context = self._session.context
        if not context.is_active or context.uid is None:
            return

        self._pending[group] = _PendingWrite(uid=context.uid, payload=payload)
        drain = self._drains.get(group)
        if drain is None or drain.done():
            self._drains[group] = asyncio.get_running_loop().create_task(
                self._drain(group)
            )

    def _on_session_state(self, state: SessionState, context: SessionContext) -> None:
        if state != SessionState.SIGNED_IN:
            self.discard_pending()

    def discard_pending(self) -> None:
        """Drop queued snapshots. Writes already in flight still complete."""
        if self._pending:
            logger.info(
                "pending_group_writes_discarded",
                groups=[group.value for group in self._pending],
            )
        self._pending.clear()

    async def _drain(self, group: LedgerGroup) -> None:
        while group in self._pending:
            write = self._pending.pop(group)
            self._writes_issued += 1
            try:
                await self._documents.write_document(
                    self._session.paths.user_document(write.uid),
                    {group.value: write.payload},
                    merge=True,
                )
            except StorageError as e:
                logger.warning(
                    "group_write_failed",
                    uid=write.uid,
                    group=group.value,
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_group_persist_failed(
                        user_id=write.uid,
                        group=group.value,
                        error_message=str(e),
                    )

    async def flush(self) -> None:
        """Wait until every queued snapshot has been written (or dropped)."""
        while True:
            running = [drain for drain in self._drains.values() if not drain.done()]
            if not running:
                break
            await asyncio.gather(*running)
        self._drains.clear()

    def close(self) -> None:
        """Stop listening for changes."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
