"""
Session Controller

Owns the lifetime of the ledger for one signed-in user:

    signed_out -> loading -> signed_in -> signed_out
                     \\-> load_failed

On sign-in it reads ``users/{uid}``, seeds a new profile for first-time
users, migrates the legacy inline transaction array into the record
collection, and loads the records. On sign-out it clears the local ledger and
never touches remote data.

DESIGN DECISION: A load is built off to the side and applied to the store in
one step. A failed read or write aborts the load with LoadFailure and the user
is never shown a half-loaded or silently-empty ledger.
"""

from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from billetera.audit import AuditLogger, create_correlation_id
from billetera.config import AppSettings
from billetera.models.ledger import (
    LedgerGroup,
    Transaction,
    UserProfile,
)
from billetera.services.auth import AuthUser
from billetera.services.storage import (
    DELETE_FIELD,
    BatchOperation,
    DocumentStoreInterface,
    LedgerPaths,
    StorageError,
)
from billetera.store import LedgerStore, default_group, parse_group, serialize_group

logger = structlog.get_logger(__name__)


class SessionState(str, Enum):
    """Lifecycle of the signed-in session."""
    SIGNED_OUT = "signed_out"
    LOADING = "loading"
    SIGNED_IN = "signed_in"
    LOAD_FAILED = "load_failed"  # signed in, but the ledger could not be loaded


class LoadFailure(Exception):
    """
    The ledger could not be loaded from the remote store.

    Distinct from "new user": a missing profile document is a normal first
    sign-in, a failed read is this error.
    """

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(f"Could not {stage}: {message}")


class MigrationFailure(LoadFailure):
    """The legacy migration batch was rejected; nothing was applied."""
    pass


class NotSignedInError(Exception):
    """An operation that needs a loaded ledger ran without one."""
    pass


class SessionContext:
    """Who is signed in and where their session stands."""

    def __init__(
        self,
        user: Optional[AuthUser] = None,
        state: SessionState = SessionState.SIGNED_OUT,
    ):
        self.user = user
        self.state = state
        self.last_error: Optional[LoadFailure] = None
        self.correlation_id: Optional[UUID] = None

    @property
    def uid(self) -> Optional[str]:
        return self.user.uid if self.user else None

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.SIGNED_IN


class _LoadedLedger:
    """Result of a load, applied to the store only once complete."""

    def __init__(self, groups: dict[LedgerGroup, Any], transactions: list[Transaction]):
        self.groups = groups
        self.transactions = transactions


StateListener = Callable[[SessionState, SessionContext], None]


def sort_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Most recent first; same-day transactions keep their arrival order."""
    return sorted(transactions, key=lambda t: t.date, reverse=True)


class SessionController:
    """
    Reacts to auth state changes and keeps the LedgerStore in step.

    Subscribe ``handle_auth_change`` to an auth provider.
    """

    def __init__(
        self,
        store: LedgerStore,
        document_store: DocumentStoreInterface,
        paths: Optional[LedgerPaths] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._documents = document_store
        self._paths = paths or LedgerPaths()
        self._audit_logger = audit_logger
        self._app_settings = app_settings or AppSettings()
        self._context = SessionContext()
        self._listeners: list[StateListener] = []
        # bumped on every transition so a stale load cannot apply its result
        self._generation = 0

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def state(self) -> SessionState:
        return self._context.state

    @property
    def paths(self) -> LedgerPaths:
        return self._paths

    @property
    def generation(self) -> int:
        """Changes on every sign-in, reload and sign-out."""
        return self._generation

    def require_uid(self) -> str:
        """
        uid of the active session.

        Raises:
            NotSignedInError: If no ledger is loaded
        """
        if not self._context.is_active or self._context.uid is None:
            raise NotSignedInError("No signed-in session with a loaded ledger")
        return self._context.uid

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SessionState) -> None:
        self._context.state = state
        for listener in list(self._listeners):
            listener(state, self._context)

    # ------------------------------------------------------------------
    # Auth transitions
    # ------------------------------------------------------------------

    async def handle_auth_change(self, user: Optional[AuthUser]) -> None:
        """Auth provider callback."""
        if user is None:
            await self.sign_out()
        else:
            await self.load(user)

    async def sign_out(self) -> None:
        """Clear the local ledger. Remote data is untouched."""
        self._generation += 1
        previous_uid = self._context.uid
        self._context = SessionContext()
        self._set_state(SessionState.SIGNED_OUT)
        self._store.reset()

        if previous_uid and self._audit_logger:
            await self._audit_logger.log_signed_out(previous_uid)

    async def reload(self) -> None:
        """Load the current user's ledger again from scratch."""
        user = self._context.user
        if user is None:
            raise NotSignedInError("Cannot reload without a signed-in user")
        await self.load(user)

    async def load(self, user: AuthUser) -> None:
        """
        Load ``user``'s ledger into the store.

        Raises:
            LoadFailure: The load did not complete (a storage error or an
                         unexpected one); the store is left empty and the
                         session is marked load_failed
            MigrationFailure: The legacy migration batch was rejected
        """
        self._generation += 1
        generation = self._generation
        correlation_id = create_correlation_id()

        self._context = SessionContext(user=user)
        self._context.correlation_id = correlation_id
        self._set_state(SessionState.LOADING)

        try:
            loaded = await self._fetch(user, correlation_id)
        except Exception as e:
            if generation != self._generation:
                return
            if isinstance(e, LoadFailure):
                failure = e
            else:
                logger.exception("unexpected_load_error", uid=user.uid)
                failure = LoadFailure("load the ledger", f"{type(e).__name__}: {e}")
            self._context.last_error = failure
            self._store.reset()
            self._set_state(SessionState.LOAD_FAILED)
            if self._audit_logger:
                await self._audit_logger.log_session_load_failed(
                    user_id=user.uid,
                    stage=failure.stage,
                    error_message=failure.message,
                    correlation_id=correlation_id,
                )
            if failure is e:
                raise
            raise failure from e

        if generation != self._generation:
            # signed out (or switched user) while we were loading
            logger.info("stale_load_discarded", uid=user.uid)
            return

        self._store.reset()
        self._store.load_groups(loaded.groups)
        self._store.set_transactions(loaded.transactions)
        self._set_state(SessionState.SIGNED_IN)

        if self._audit_logger:
            await self._audit_logger.log_session_loaded(
                user_id=user.uid,
                transaction_count=len(loaded.transactions),
                correlation_id=correlation_id,
            )

    # ------------------------------------------------------------------
    # Load steps
    # ------------------------------------------------------------------

    def _default_profile(self, user: AuthUser) -> UserProfile:
        return UserProfile(
            name=user.display_name or self._app_settings.default_user_name,
            email=user.email or "",
            phone="",
            country_code=self._app_settings.default_country_code,
        )

    def _defaults_for(self, group: LedgerGroup, user: AuthUser) -> Any:
        if group == LedgerGroup.PROFILE:
            return self._default_profile(user)
        return default_group(group)

    async def _fetch(self, user: AuthUser, correlation_id: UUID) -> _LoadedLedger:
        uid = user.uid
        document_path = self._paths.user_document(uid)

        try:
            document = await self._documents.read_document(document_path)
        except StorageError as e:
            raise LoadFailure("read the profile document", str(e)) from e

        if document is None:
            return await self._create_profile(user, document_path, correlation_id)

        groups: dict[LedgerGroup, Any] = {}
        defaulted: list[LedgerGroup] = []
        for group in LedgerGroup:
            raw = document.get(group.value)
            if raw is None:
                groups[group] = self._defaults_for(group, user)
                defaulted.append(group)
                continue
            try:
                groups[group] = parse_group(group, raw)
            except ValidationError as e:
                logger.warning(
                    "malformed_group_replaced_by_default",
                    uid=uid,
                    group=group.value,
                    error=str(e),
                )
                groups[group] = self._defaults_for(group, user)
                defaulted.append(group)

        legacy = document.get(self._paths.legacy_field)
        if isinstance(legacy, list) and legacy:
            await self.migrate_legacy_transactions(uid, legacy, correlation_id)

        if defaulted:
            await self._backfill(uid, document_path, groups, defaulted, correlation_id)

        transactions = await self._load_transactions(uid)
        return _LoadedLedger(groups=groups, transactions=transactions)

    async def _create_profile(
        self,
        user: AuthUser,
        document_path: str,
        correlation_id: UUID,
    ) -> _LoadedLedger:
        """First sign-in: seed the profile document. No legacy field is written."""
        groups = {group: self._defaults_for(group, user) for group in LedgerGroup}
        payload = {
            group.value: serialize_group(group, value)
            for group, value in groups.items()
        }
        try:
            await self._documents.write_document(document_path, payload, merge=False)
        except StorageError as e:
            raise LoadFailure("create the profile document", str(e)) from e

        if self._audit_logger:
            await self._audit_logger.log_profile_created(user.uid, correlation_id)
        return _LoadedLedger(groups=groups, transactions=[])

    async def _backfill(
        self,
        uid: str,
        document_path: str,
        groups: dict[LedgerGroup, Any],
        defaulted: list[LedgerGroup],
        correlation_id: UUID,
    ) -> None:
        """Persist defaults for groups the document lacked (e.g. after a reset)."""
        payload = {
            group.value: serialize_group(group, groups[group])
            for group in defaulted
        }
        try:
            await self._documents.write_document(document_path, payload, merge=True)
        except StorageError as e:
            raise LoadFailure("seed missing profile fields", str(e)) from e

        if self._audit_logger:
            await self._audit_logger.log_profile_backfilled(
                user_id=uid,
                groups=[group.value for group in defaulted],
                correlation_id=correlation_id,
            )

    async def _load_transactions(self, uid: str) -> list[Transaction]:
        try:
            records = await self._documents.list_records(
                self._paths.transactions_collection(uid)
            )
        except StorageError as e:
            raise LoadFailure("list transaction records", str(e)) from e

        transactions = []
        for record in records:
            try:
                transactions.append(Transaction.from_record(record.id, record.data))
            except ValidationError as e:
                logger.warning(
                    "malformed_transaction_skipped",
                    uid=uid,
                    record_id=record.id,
                    error=str(e),
                )
        return sort_transactions(transactions)

    async def migrate_legacy_transactions(
        self,
        uid: str,
        legacy: list[Any],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Move the inline transaction array into the record collection.

        One atomic batch creates a record per entry and deletes the legacy
        field. Either all of it lands or none of it does, so a failed attempt
        is simply retried on the next sign-in.

        Returns:
            Number of records created

        Raises:
            MigrationFailure: The batch was rejected
        """
        collection_path = self._paths.transactions_collection(uid)
        operations = []
        skipped = 0
        for entry in legacy:
            if not isinstance(entry, dict):
                skipped += 1
                continue
            # the old numeric id is superseded by the store-generated one
            data = {key: value for key, value in entry.items() if key != "id"}
            operations.append(BatchOperation.create(collection_path, data))

        if skipped:
            logger.warning("legacy_entries_skipped", uid=uid, skipped=skipped)

        operations.append(BatchOperation.update(
            self._paths.user_document(uid),
            {self._paths.legacy_field: DELETE_FIELD},
        ))

        try:
            await self._documents.atomic_batch(operations)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_legacy_migration_failed(
                    user_id=uid,
                    pending=len(operations) - 1,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise MigrationFailure("migrate legacy transactions", str(e)) from e

        migrated = len(operations) - 1
        if self._audit_logger:
            await self._audit_logger.log_legacy_migration_committed(
                user_id=uid,
                migrated=migrated,
                skipped=skipped,
                correlation_id=correlation_id,
            )
        return migrated
