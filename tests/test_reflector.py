"""
Tests for the persistence reflector: per-group merge-writes in the
background, coalesced, never raised.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from billetera.models.audit import AuditEventType
from billetera.models.ledger import (
    Card,
    LedgerGroup,
    TransactionDraft,
    TransactionType,
    UserProfile,
    WishlistItem,
)
from billetera.reflector import PersistenceReflector
from billetera.session import SessionController

from conftest import FlakyDocumentStore


USER_DOC = "users/u1"


class GatedDocumentStore(FlakyDocumentStore):
    """Holds document writes until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()

    async def write_document(self, path, data, merge=False):
        await self.gate.wait()
        await super().write_document(path, data, merge)


def card(card_id: int, name: str) -> Card:
    return Card(id=card_id, name=name, limit=Decimal("1000"))


def group_writes(documents: FlakyDocumentStore, field: str) -> list:
    return [data[field] for path, data, merge in documents.writes if merge and field in data]


@pytest.fixture
def gated() -> GatedDocumentStore:
    return GatedDocumentStore()


@pytest.fixture
def gated_session(store, gated) -> SessionController:
    return SessionController(store, gated)


@pytest.fixture
def gated_reflector(store, gated, gated_session, audit_logger) -> PersistenceReflector:
    return PersistenceReflector(store, gated, gated_session, audit_logger)


class TestReflection:
    """Tests for what gets written and where."""

    @pytest.mark.asyncio
    async def test_group_change_is_merge_written(self, session, reflector, store, documents, user):
        """Only the changed field is written, with merge."""
        await session.load(user)
        store.set_profile(UserProfile(name="Ana", phone="99"))
        await reflector.flush()

        path, data, merge = documents.writes[-1]
        assert path == USER_DOC
        assert merge is True
        assert list(data) == ["userData"]
        assert documents.documents[USER_DOC]["userData"]["phone"] == "99"
        # other groups untouched
        assert len(documents.documents[USER_DOC]["cards"]) == 2

    @pytest.mark.asyncio
    async def test_nothing_written_when_signed_out(self, reflector, store, documents):
        """Edits before sign-in stay local."""
        store.set_cards([card(9, "Amex")])
        await reflector.flush()
        assert documents.writes == []
        assert reflector.pending_groups == set()

    @pytest.mark.asyncio
    async def test_transactions_are_not_reflected(self, session, gateway, reflector, store, documents, user):
        """Adding a transaction writes a record, not the profile document."""
        await session.load(user)
        writes_before = len(documents.writes)
        await gateway.add_transaction(TransactionDraft(
            type=TransactionType.INGRESO,
            amount=Decimal("1000"),
            category="Salario",
            date=date(2024, 3, 1),
        ))
        await reflector.flush()

        assert len(documents.writes) == writes_before
        assert reflector.writes_issued == 0

    @pytest.mark.asyncio
    async def test_groups_are_independent(self, session, reflector, store, documents, user):
        """Each changed group gets its own write."""
        await session.load(user)
        store.set_cards([card(9, "Amex")])
        store.set_wishlist([WishlistItem(id=1, name="Viaje", price=Decimal("10"))])
        await reflector.flush()

        assert group_writes(documents, "cards") == [[{"id": 9, "name": "Amex", "limit": 1000.0}]]
        assert group_writes(documents, "wishlist")[0][0]["name"] == "Viaje"


class TestCoalescing:
    """Tests that rapid edits collapse and the last value wins."""

    @pytest.mark.asyncio
    async def test_burst_is_written_once(self, session, reflector, store, documents, user):
        """Three edits in one step become one write of the last value."""
        await session.load(user)
        store.set_cards([card(1, "A")])
        store.set_cards([card(1, "B")])
        store.set_cards([card(1, "C")])
        await reflector.flush()

        assert reflector.writes_issued == 1
        assert group_writes(documents, "cards") == [[{"id": 1, "name": "C", "limit": 1000.0}]]

    @pytest.mark.asyncio
    async def test_last_value_lands_last(self, gated_session, gated_reflector, store, gated, user):
        """Edits made while a write is in flight end with the newest value."""
        await gated_session.load(user)
        gated.gate.clear()

        store.set_cards([card(1, "A")])
        await asyncio.sleep(0)
        store.set_cards([card(1, "B")])
        store.set_cards([card(1, "C")])
        assert gated_reflector.pending_groups == {LedgerGroup.CARDS}

        gated.gate.set()
        await gated_reflector.flush()

        names = [cards[0]["name"] for cards in group_writes(gated, "cards")]
        assert names == ["A", "C"]
        assert gated.documents[USER_DOC]["cards"][0]["name"] == "C"


class TestFailures:
    """Tests that failed writes are logged, not raised."""

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_audited(self, session, reflector, store, documents, user, audit_logger):
        """flush() returns normally and the failure is on record."""
        await session.load(user)
        documents.fail_on["write_document"] = 1

        store.set_cards([card(1, "A")])
        await reflector.flush()

        failures = [
            event for event in audit_logger.events
            if event.event_type == AuditEventType.GROUP_PERSIST_FAILED
        ]
        assert len(failures) == 1
        assert failures[0].entity_id == "cards"
        assert documents.documents[USER_DOC]["cards"][0]["name"] == "Visa Principal"

    @pytest.mark.asyncio
    async def test_failed_write_is_not_retried(self, session, reflector, store, documents, user):
        """One attempt per snapshot; the next edit writes again."""
        await session.load(user)
        documents.fail_on["write_document"] = 1

        store.set_cards([card(1, "A")])
        await reflector.flush()
        assert reflector.writes_issued == 1

        store.set_cards([card(1, "B")])
        await reflector.flush()
        assert reflector.writes_issued == 2
        assert documents.documents[USER_DOC]["cards"][0]["name"] == "B"


class TestSignOut:
    """Tests for pending writes across sign-out."""

    @pytest.mark.asyncio
    async def test_sign_out_discards_queued_writes(self, gated_session, gated_reflector, store, gated, user):
        """The in-flight write completes; the queued one is dropped."""
        await gated_session.load(user)
        gated.gate.clear()

        store.set_cards([card(1, "A")])
        await asyncio.sleep(0)
        store.set_cards([card(1, "B")])
        await gated_session.sign_out()
        assert gated_reflector.pending_groups == set()

        gated.gate.set()
        await gated_reflector.flush()

        names = [cards[0]["name"] for cards in group_writes(gated, "cards")]
        assert names == ["A"]

    @pytest.mark.asyncio
    async def test_close_stops_reflection(self, session, reflector, store, documents, user):
        """A closed reflector ignores further edits."""
        await session.load(user)
        reflector.close()
        store.set_cards([card(1, "A")])
        await reflector.flush()
        assert reflector.writes_issued == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
