"""
Main Orchestrator for Billetera

This module ties together all the components of the ledger core:
1. Auth state changes drive the session (load on sign-in, clear on sign-out)
2. User mutations go through the gateway (remote first, then local)
3. Group edits are reflected to the user document in the background

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is shown before the session has finished loading
- Transactions never travel through the background reflector
- Every user action is audited

This is the "glue" a UI binds to; it holds no ledger logic of its own.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from billetera.aggregator import CardUsage, LedgerSummary, SummaryCache, card_usage
from billetera.audit import AuditLogger
from billetera.config import get_settings
from billetera.gateway import MutationGateway
from billetera.models.ledger import Acquisition
from billetera.reflector import PersistenceReflector
from billetera.services.auth import (
    AuthError,
    AuthProviderInterface,
    AuthUser,
    FirebaseAuthProvider,
)
from billetera.services.storage import (
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    LedgerPaths,
    StorageError,
)
from billetera.session import SessionController
from billetera.store import LedgerStore

logger = structlog.get_logger(__name__)


class LedgerApp:
    """
    One user-facing ledger: store, session, gateway and reflector wired
    together around a single auth provider.

    Call ``start()`` once inside the event loop, ``stop()`` before exiting.
    """

    def __init__(
        self,
        auth: AuthProviderInterface,
        document_store: DocumentStoreInterface,
        paths: Optional[LedgerPaths] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = get_settings()
        self.auth = auth
        self.store = LedgerStore()
        self.audit_logger = audit_logger or AuditLogger()
        self.session = SessionController(
            self.store,
            document_store,
            paths=paths or LedgerPaths(settings.store),
            audit_logger=self.audit_logger,
            app_settings=settings.app,
        )
        self.gateway = MutationGateway(
            self.store, document_store, self.session, self.audit_logger
        )
        self.reflector = PersistenceReflector(
            self.store, document_store, self.session, self.audit_logger
        )
        self._summary_cache = SummaryCache()
        self._unsubscribe_auth: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        """Follow the auth provider; loads the ledger if already signed in."""
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = await self.auth.on_auth_state_change(
                self.session.handle_auth_change
            )

    async def stop(self) -> None:
        """Stop following auth and wait for background writes to settle."""
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        await self.reflector.flush()
        self.reflector.close()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthUser:
        """
        Sign in and load the ledger.

        Raises:
            AuthError: Shown inline on the login form
            LoadFailure: Signed in, but the ledger could not be loaded
        """
        try:
            return await self.auth.sign_in(email, password)
        except AuthError as e:
            await self.audit_logger.log_auth_failed(e.code, e.message)
            raise

    async def register(self, email: str, password: str) -> AuthUser:
        try:
            return await self.auth.register(email, password)
        except AuthError as e:
            await self.audit_logger.log_auth_failed(e.code, e.message)
            raise

    async def sign_out(self) -> None:
        await self.auth.sign_out()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def summary(self) -> LedgerSummary:
        return self._summary_cache.get(self.store.transactions)

    @property
    def total_balance(self) -> Decimal:
        return self.summary.total_balance

    def card_usages(self) -> list[CardUsage]:
        return [
            card_usage(card, self.store.transactions, self.store.paid_months)
            for card in self.store.cards
        ]

    # ------------------------------------------------------------------
    # Group edits (persisted by the reflector)
    # ------------------------------------------------------------------

    def add_acquisition(
        self,
        name: str,
        amount: Decimal,
        acquired_on: Optional[date] = None,
    ) -> Acquisition:
        """Record a purchase paid from the savings fund."""
        self.session.require_uid()
        acquisition = Acquisition(
            id=self.store.next_acquisition_id(),
            name=name,
            amount=amount,
            date=acquired_on,
        )
        self.store.set_acquisitions([*self.store.acquisitions, acquisition])
        return acquisition

    def set_card_period_paid(self, card_id: int, year: int, month: int, paid: bool) -> None:
        self.session.require_uid()
        self.store.set_paid_month(card_id, year, month, paid)


def create_app_components(
    auth: Optional[AuthProviderInterface] = None,
    use_firestore: bool = True,
) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        auth: Auth provider; defaults to Firebase email/password auth
        use_firestore: Whether to connect to Firestore.
                       Set to False for local runs and tests.

    Returns:
        A wired, not yet started LedgerApp
    """
    document_store: DocumentStoreInterface
    if use_firestore:
        try:
            client = FirestoreClient()
            client.connect()
            document_store = FirestoreDocumentStore(client)
        except (StorageError, ValidationError) as e:
            # Firebase not configured - continue in memory
            logger.warning("firestore_unavailable_using_memory", error=str(e))
            document_store = InMemoryDocumentStore()
    else:
        document_store = InMemoryDocumentStore()

    return LedgerApp(
        auth=auth or FirebaseAuthProvider(),
        document_store=document_store,
    )
