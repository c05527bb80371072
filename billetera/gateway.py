"""
Mutation Gateway

Every user-triggered change to transactions and acquisitions goes through
here, as does the full reset.

CRITICAL: For transactions the remote write happens FIRST. The local ledger
is only updated once the store has confirmed the write; a failed write leaves
the local ledger exactly as it was and surfaces as MutationFailure.
If the session changes while a write is in flight (sign-out, another user
signing in, a reload) the confirmed write is not mirrored locally; the next
load picks it up from the store.

Deletion is a two-phase flow modelled as a small state machine:

    idle --prompt--> pending_confirmation --confirm--> executing --> idle
                            \\--cancel--> idle
"""

from enum import Enum
from typing import Optional, Union

import structlog
from pydantic import BaseModel

from billetera.audit import AuditLogger, create_correlation_id
from billetera.models.ledger import Transaction, TransactionDraft, TransactionPatch
from billetera.services.storage import DocumentStoreInterface, StorageError
from billetera.session import SessionContext, SessionController, SessionState
from billetera.store import LedgerStore

logger = structlog.get_logger(__name__)


class MutationFailure(Exception):
    """A remote write was rejected; the local ledger was not changed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class DeletionStateError(Exception):
    """A deletion transition was requested from the wrong state."""
    pass


class DeletionState(str, Enum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"
    EXECUTING = "executing"


class DeletionTarget(BaseModel):
    """
    What the confirmation dialog is about to delete.

    Transactions are addressed by store id (str), acquisitions by their
    local numeric id (int).
    """

    target_id: Union[int, str]
    is_acquisition: bool = False


class MutationGateway:
    """
    Applies mutations to the remote store and mirrors them locally.
    """

    def __init__(
        self,
        store: LedgerStore,
        document_store: DocumentStoreInterface,
        session: SessionController,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._documents = document_store
        self._session = session
        self._audit_logger = audit_logger
        self._deletion_state = DeletionState.IDLE
        self._pending: Optional[DeletionTarget] = None
        session.on_state_change(self._on_session_state)

    def _on_session_state(self, state: SessionState, context: SessionContext) -> None:
        # a selection never outlives the session it was made in
        if state != SessionState.SIGNED_IN and self._deletion_state == DeletionState.PENDING_CONFIRMATION:
            self._pending = None
            self._deletion_state = DeletionState.IDLE

    @property
    def deletion_state(self) -> DeletionState:
        return self._deletion_state

    @property
    def pending_deletion(self) -> Optional[DeletionTarget]:
        return self._pending

    @property
    def confirmation_open(self) -> bool:
        """Whether the UI should show the delete confirmation."""
        return self._deletion_state != DeletionState.IDLE

    async def _fail(
        self,
        uid: str,
        operation: str,
        entity_id: Optional[str],
        error: StorageError,
    ) -> MutationFailure:
        if self._audit_logger:
            await self._audit_logger.log_mutation_failed(
                user_id=uid,
                operation=operation,
                entity_id=entity_id,
                error_message=str(error),
            )
        return MutationFailure(operation, str(error))

    def _still_current(self, uid: str, generation: int, operation: str) -> bool:
        """Whether the session that issued a write is still the loaded one."""
        if self._session.generation == generation and self._session.context.uid == uid:
            return True
        logger.info("session_changed_during_write", uid=uid, operation=operation)
        return False

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def add_transaction(self, draft: TransactionDraft) -> Transaction:
        """
        Persist a new transaction, then prepend it locally.

        Raises:
            NotSignedInError: No loaded ledger
            MutationFailure: The record could not be created
        """
        uid = self._session.require_uid()
        generation = self._session.generation
        try:
            record_id = await self._documents.create_record(
                self._session.paths.transactions_collection(uid),
                draft.to_record(),
            )
        except StorageError as e:
            raise await self._fail(uid, "add_transaction", None, e) from e

        transaction = Transaction.from_draft(draft, record_id)
        if self._still_current(uid, generation, "add_transaction"):
            self._store.prepend_transaction(transaction)

        if self._audit_logger:
            await self._audit_logger.log_transaction_added(
                user_id=uid,
                transaction_id=record_id,
                transaction_type=transaction.type.value,
                amount=str(transaction.amount),
            )
        return transaction

    async def save_edit(self, transaction_id: str, patch: TransactionPatch) -> Transaction:
        """
        Update description, amount and date of a transaction.

        Type, category and card are immutable after creation.

        Raises:
            NotSignedInError: No loaded ledger
            MutationFailure: Unknown transaction or rejected update
        """
        uid = self._session.require_uid()
        generation = self._session.generation
        current = self._store.get_transaction(transaction_id)
        if current is None:
            raise MutationFailure("save_edit", f"Unknown transaction: {transaction_id}")

        fields = patch.to_update()
        try:
            await self._documents.update_record(
                self._session.paths.transaction_record(uid, transaction_id),
                fields,
            )
        except StorageError as e:
            raise await self._fail(uid, "save_edit", transaction_id, e) from e

        updated = current.model_copy(update={
            "description": patch.description,
            "amount": patch.amount,
            "date": patch.date,
        })
        if self._still_current(uid, generation, "save_edit"):
            self._store.replace_transaction(updated)

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                user_id=uid,
                transaction_id=transaction_id,
                fields=fields,
            )
        return updated

    # ------------------------------------------------------------------
    # Two-phase delete
    # ------------------------------------------------------------------

    async def prompt_delete(
        self,
        target_id: Union[int, str],
        is_acquisition: bool = False,
    ) -> DeletionTarget:
        """
        Select something for deletion and open the confirmation.

        Prompting again while a confirmation is open replaces the selection.

        Raises:
            DeletionStateError: A deletion is already executing
        """
        uid = self._session.require_uid()
        if self._deletion_state == DeletionState.EXECUTING:
            raise DeletionStateError("A deletion is already in progress")

        if is_acquisition and not isinstance(target_id, int):
            raise DeletionStateError(f"Acquisition ids are numeric, got {target_id!r}")
        if not is_acquisition and not isinstance(target_id, str):
            raise DeletionStateError(f"Transaction ids are strings, got {target_id!r}")

        self._pending = DeletionTarget(target_id=target_id, is_acquisition=is_acquisition)
        self._deletion_state = DeletionState.PENDING_CONFIRMATION

        if self._audit_logger:
            await self._audit_logger.log_delete_prompted(
                user_id=uid,
                target_id=str(target_id),
                is_acquisition=is_acquisition,
            )
        return self._pending

    async def cancel_delete(self) -> None:
        """Close the confirmation without deleting anything."""
        if self._deletion_state != DeletionState.PENDING_CONFIRMATION:
            return
        target = self._pending
        self._pending = None
        self._deletion_state = DeletionState.IDLE

        uid = self._session.context.uid
        if self._audit_logger and uid and target:
            await self._audit_logger.log_delete_cancelled(uid, str(target.target_id))

    async def confirm_delete(self) -> None:
        """
        Delete the pending target.

        Acquisitions are filtered out of the local list (and reach the store
        through the acquisitions group). Transactions are deleted remotely
        first and then filtered out locally.

        The selection is cleared and the confirmation closed whatever the
        outcome.

        Raises:
            DeletionStateError: Nothing is pending confirmation
            MutationFailure: The remote delete failed; nothing was removed
        """
        if self._deletion_state != DeletionState.PENDING_CONFIRMATION or self._pending is None:
            raise DeletionStateError("No deletion is pending confirmation")

        target = self._pending
        self._deletion_state = DeletionState.EXECUTING
        try:
            uid = self._session.require_uid()
            generation = self._session.generation
            if target.is_acquisition:
                await self._delete_acquisition(uid, int(target.target_id))
            else:
                await self._delete_transaction(uid, str(target.target_id), generation)
        finally:
            self._pending = None
            self._deletion_state = DeletionState.IDLE

    async def _delete_acquisition(self, uid: str, acquisition_id: int) -> None:
        self._store.set_acquisitions([
            a for a in self._store.acquisitions if a.id != acquisition_id
        ])
        if self._audit_logger:
            await self._audit_logger.log_acquisition_deleted(uid, acquisition_id)

    async def _delete_transaction(
        self,
        uid: str,
        transaction_id: str,
        generation: int,
    ) -> None:
        try:
            await self._documents.delete_record(
                self._session.paths.transaction_record(uid, transaction_id)
            )
        except StorageError as e:
            raise await self._fail(uid, "delete_transaction", transaction_id, e) from e

        if self._still_current(uid, generation, "delete_transaction"):
            self._store.remove_transaction(transaction_id)
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(uid, transaction_id)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    async def reset_all(self) -> None:
        """
        Empty the user's profile document and reload as if freshly signed in.

        The caller is responsible for the user's double confirmation. The
        transaction record collection is NOT touched: records created before
        the reset are still there after it.

        Raises:
            NotSignedInError: No loaded ledger
            MutationFailure: The profile document could not be overwritten
            LoadFailure: The reload after the reset failed
        """
        uid = self._session.require_uid()
        generation = self._session.generation
        correlation_id = create_correlation_id()
        try:
            await self._documents.write_document(
                self._session.paths.user_document(uid), {}, merge=False
            )
        except StorageError as e:
            raise await self._fail(uid, "reset_all", uid, e) from e

        if self._audit_logger:
            await self._audit_logger.log_ledger_reset(uid, correlation_id)

        if self._still_current(uid, generation, "reset_all"):
            await self._session.reload()

