"""
Tests for the in-memory ledger store and group codecs.
"""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from billetera.models.ledger import (
    Acquisition,
    Card,
    LedgerGroup,
    Transaction,
    TransactionType,
    UserProfile,
)
from billetera.store import LedgerStore, default_group, parse_group, serialize_group


def make_transaction(record_id: str, amount: str = "10") -> Transaction:
    return Transaction(
        id=record_id,
        type=TransactionType.GASTO,
        amount=Decimal(amount),
        category="Ocio",
        date=date(2024, 3, 1),
    )


class TestGroupListeners:
    """Tests for group change notifications."""

    def test_setter_notifies_with_wire_payload(self):
        """Listeners get the group and its serialized value."""
        store = LedgerStore()
        seen = []
        store.subscribe(lambda group, payload: seen.append((group, payload)))

        store.set_cards([Card(id=3, name="Amex", limit=Decimal("1500.5"))])

        assert seen == [(LedgerGroup.CARDS, [{"id": 3, "name": "Amex", "limit": 1500.5}])]

    def test_transaction_mutators_do_not_notify(self):
        """Transactions are never reflected as a group."""
        store = LedgerStore()
        seen = []
        store.subscribe(lambda group, payload: seen.append(group))

        store.set_transactions([make_transaction("a")])
        store.prepend_transaction(make_transaction("b"))
        store.replace_transaction(make_transaction("a", "20"))
        store.remove_transaction("b")

        assert seen == []
        assert [t.id for t in store.transactions] == ["a"]
        assert store.transactions[0].amount == Decimal("20")

    def test_reset_does_not_notify(self):
        """A reset never reaches the remote document."""
        store = LedgerStore()
        store.set_profile(UserProfile(name="Ana"))
        seen = []
        store.subscribe(lambda group, payload: seen.append(group))

        store.reset()

        assert seen == []
        assert store.profile.name == "Usuario"
        assert len(store.cards) == 2

    def test_unsubscribe(self):
        """Unsubscribed listeners are not called."""
        store = LedgerStore()
        seen = []
        unsubscribe = store.subscribe(lambda group, payload: seen.append(group))
        unsubscribe()
        store.set_wishlist([])
        assert seen == []

    def test_load_groups_does_not_notify(self):
        """Groups read from the remote document are not written back."""
        store = LedgerStore()
        seen = []
        store.subscribe(lambda group, payload: seen.append(group))
        store.load_groups({LedgerGroup.PAID_MONTHS: {"1-2024-3": True}})
        assert seen == []
        assert store.paid_months == {"1-2024-3": True}


class TestStoreOperations:
    """Tests for list identity, ids and paid periods."""

    def test_transaction_list_identity_changes(self):
        """Every mutation produces a new list object."""
        store = LedgerStore()
        before = store.transactions
        store.prepend_transaction(make_transaction("a"))
        assert store.transactions is not before

    def test_prepend_puts_newest_first(self):
        """New transactions go to the top."""
        store = LedgerStore()
        store.set_transactions([make_transaction("old")])
        store.prepend_transaction(make_transaction("new"))
        assert [t.id for t in store.transactions] == ["new", "old"]

    def test_next_acquisition_id(self):
        """Ids continue after the highest one in use."""
        store = LedgerStore()
        assert store.next_acquisition_id() == 1
        store.set_acquisitions([
            Acquisition(id=4, name="Silla", amount=Decimal("10")),
            Acquisition(id=2, name="Mesa", amount=Decimal("20")),
        ])
        assert store.next_acquisition_id() == 5

    def test_set_paid_month(self):
        """Paying sets the key, unpaying removes it."""
        store = LedgerStore()
        store.set_paid_month(1, 2024, 3, True)
        assert store.paid_months == {"1-2024-3": True}
        store.set_paid_month(1, 2024, 3, False)
        assert store.paid_months == {}

    def test_get_unknown_transaction(self):
        """Unknown ids return None."""
        assert LedgerStore().get_transaction("nope") is None


class TestGroupCodec:
    """Tests for parsing and serializing document fields."""

    def test_profile_round_trip_uses_camel_case(self):
        """The profile is stored with countryCode."""
        payload = serialize_group(LedgerGroup.PROFILE, UserProfile(name="Ana", country_code="+34"))
        assert payload["countryCode"] == "+34"
        assert parse_group(LedgerGroup.PROFILE, payload).country_code == "+34"

    def test_malformed_group_raises(self):
        """Schema violations surface as ValidationError."""
        with pytest.raises(ValidationError):
            parse_group(LedgerGroup.CARDS, [{"id": "x", "name": "", "limit": -1}])

    def test_acquisition_without_date(self):
        """Acquisitions without a date serialize without the key."""
        payload = serialize_group(
            LedgerGroup.ACQUISITIONS,
            [Acquisition(id=1, name="Bicicleta", amount=Decimal("99.9"))],
        )
        assert payload == [{"id": 1, "name": "Bicicleta", "amount": 99.9}]

    def test_defaults(self):
        """Default values of every group."""
        assert default_group(LedgerGroup.WISHLIST) == []
        assert default_group(LedgerGroup.PAID_MONTHS) == {}
        assert len(default_group(LedgerGroup.CARDS)) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
