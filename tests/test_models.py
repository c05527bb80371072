"""
Tests for Billetera

Test strategy:
1. Unit tests for individual components (models, store, aggregates)
2. Integration tests for session, gateway and reflector over the in-memory store
3. No real Firestore or Firebase calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal

from pydantic import ValidationError

from billetera.models.ledger import (
    Acquisition,
    Card,
    CategorySet,
    LedgerGroup,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    TransactionType,
    UserProfile,
    WishlistItem,
    default_cards,
    paid_month_key,
)
from billetera.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestProfileAndDefaults:
    """Tests for profile, categories and cards."""

    def test_profile_defaults(self):
        """A fresh profile has the documented defaults."""
        profile = UserProfile()
        assert profile.name == "Usuario"
        assert profile.phone == ""
        assert profile.email == ""
        assert profile.country_code == "+56"

    def test_profile_wire_names(self):
        """countryCode is the stored name; both names are accepted."""
        stored = UserProfile.model_validate({"name": "Ana", "countryCode": "+34"})
        assert stored.country_code == "+34"
        assert UserProfile(country_code="+1").model_dump(by_alias=True)["countryCode"] == "+1"

    def test_profile_strips_whitespace(self):
        """Whitespace is stripped from the name."""
        assert UserProfile(name="  Ana  ").name == "Ana"

    def test_default_categories(self):
        """Default category lists, in display order."""
        categories = CategorySet()
        assert categories.ingreso == ["Salario", "Ventas", "Freelance"]
        assert categories.gasto[0] == "Alimentación"
        assert "Pago Tarjeta" in categories.gasto

    def test_categories_for_type(self):
        """Savings has no category list."""
        categories = CategorySet()
        assert categories.for_type(TransactionType.INGRESO) == categories.ingreso
        assert categories.for_type(TransactionType.AHORRO) == []

    def test_default_categories_are_not_shared(self):
        """Each CategorySet owns its lists."""
        first = CategorySet()
        first.gasto.append("Mascotas")
        assert "Mascotas" not in CategorySet().gasto

    def test_default_cards(self):
        """Two default cards with their limits."""
        cards = default_cards()
        assert [(c.id, c.name, c.limit) for c in cards] == [
            (1, "Visa Principal", Decimal("1000000")),
            (2, "Mastercard", Decimal("500000")),
        ]

    def test_card_rejects_negative_limit(self):
        """Card limits cannot be negative."""
        with pytest.raises(ValidationError):
            Card(id=3, name="Amex", limit=Decimal("-1"))


class TestTransactionModels:
    """Tests for drafts, persisted transactions and patches."""

    def test_draft_rejects_negative_amount(self):
        """Amounts are never negative; the type carries the sign."""
        with pytest.raises(ValidationError):
            TransactionDraft(
                type=TransactionType.GASTO,
                amount=Decimal("-5"),
                category="Ocio",
                date=date(2024, 3, 1),
            )

    def test_float_amounts_keep_their_decimal_value(self):
        """0.1 read from the store is exactly Decimal('0.1')."""
        transaction = Transaction.from_record(
            "r1", {"type": "gasto", "amount": 0.1, "category": "Ocio", "date": "2024-03-01"}
        )
        assert transaction.amount == Decimal("0.1")

    def test_to_record_wire_format(self):
        """Records hold numbers, ISO dates and cardId."""
        draft = TransactionDraft(
            type=TransactionType.GASTO,
            amount=Decimal("300"),
            category="Alimentación",
            date=date(2024, 3, 15),
            card_id=1,
            description="Supermercado",
        )
        record = draft.to_record()
        assert record == {
            "type": "gasto",
            "amount": 300.0,
            "category": "Alimentación",
            "date": "2024-03-15",
            "cardId": 1,
            "description": "Supermercado",
        }

    def test_to_record_omits_missing_card(self):
        """No cardId key when the expense was not charged to a card."""
        draft = TransactionDraft(
            type=TransactionType.INGRESO,
            amount=Decimal("1000"),
            category="Salario",
            date=date(2024, 3, 1),
        )
        assert "cardId" not in draft.to_record()

    def test_from_record_prefers_store_id(self):
        """A legacy numeric id inside the data is ignored."""
        transaction = Transaction.from_record(
            "abc123",
            {"id": 1700000000000, "type": "ingreso", "amount": 10, "category": "Ventas",
             "date": "2024-01-02", "cardId": 2},
        )
        assert transaction.id == "abc123"
        assert transaction.card_id == 2

    def test_from_record_accepts_timestamps(self):
        """Older clients stored full ISO timestamps."""
        transaction = Transaction.from_record(
            "r1", {"type": "gasto", "amount": 5, "category": "", "date": "2024-01-02T10:00:00.000Z"}
        )
        assert transaction.date == date(2024, 1, 2)

    def test_from_draft(self):
        """The store id is attached to the draft's fields."""
        draft = TransactionDraft(
            type=TransactionType.AHORRO,
            amount=Decimal("200"),
            date=date(2024, 3, 1),
        )
        transaction = Transaction.from_draft(draft, "xyz")
        assert transaction.id == "xyz"
        assert transaction.amount == Decimal("200")

    def test_patch_from_form(self):
        """Form text is parsed into a patch."""
        patch = TransactionPatch.from_form("Cena", " 450,50 ", "2024-03-20")
        assert patch.amount == Decimal("450.50")
        assert patch.date == date(2024, 3, 20)

    @pytest.mark.parametrize("amount_text", ["", "abc", "NaN", "-3"])
    def test_patch_from_form_rejects_bad_amounts(self, amount_text):
        """Unparseable or negative amounts are rejected."""
        with pytest.raises(ValueError):
            TransactionPatch.from_form("x", amount_text, "2024-03-20")

    def test_patch_from_form_rejects_bad_date(self):
        """Dates must be ISO."""
        with pytest.raises(ValueError):
            TransactionPatch.from_form("x", "10", "20/03/2024")

    def test_patch_update_has_only_mutable_fields(self):
        """An update never touches type, category or card."""
        patch = TransactionPatch(description="Cena", amount=Decimal("450"), date=date(2024, 3, 20))
        assert patch.to_update() == {"description": "Cena", "amount": 450.0, "date": "2024-03-20"}

    def test_patch_without_description_writes_empty_string(self):
        """An omitted description is stored as "", never null."""
        patch = TransactionPatch(amount=Decimal("450"), date=date(2024, 3, 20))
        assert patch.to_update()["description"] == ""


class TestSavingsModels:
    """Tests for wishlist items, acquisitions and paid months."""

    def test_wishlist_item(self):
        """Wishlist items have a price and an optional link."""
        item = WishlistItem(id=1, name="Bicicleta", price=Decimal("250000"))
        assert item.url is None

    def test_acquisition_ids_are_numeric(self):
        """Acquisition ids are integers, unlike transaction ids."""
        with pytest.raises(ValidationError):
            Acquisition(id="abc", name="Bicicleta", amount=Decimal("1"))

    def test_paid_month_key(self):
        """card-year-month with months 1-12."""
        assert paid_month_key(1, 2024, 3) == "1-2024-3"
        with pytest.raises(ValueError):
            paid_month_key(1, 2024, 0)
        with pytest.raises(ValueError):
            paid_month_key(1, 2024, 13)

    def test_group_field_names(self):
        """Group values are the stored field names."""
        assert LedgerGroup.PROFILE.value == "userData"
        assert LedgerGroup.PAID_MONTHS.value == "paidMonths"
        assert len(list(LedgerGroup)) == 6


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.LEDGER_RESET,
            user_id="u1",
            description="Test event",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "ledger_reset"
        assert log_dict["user_id"] == "u1"
        assert log_dict["correlation_id"] is None

    def test_audit_event_builder_group_persist_failed(self):
        """Failed background writes are warnings about the group."""
        event = AuditEventBuilder.group_persist_failed(
            user_id="u1",
            group="cards",
            error_message="unavailable",
        )
        assert event.event_type == AuditEventType.GROUP_PERSIST_FAILED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "cards"

    def test_audit_event_builder_transaction_added(self):
        """Adding a transaction is a user action."""
        event = AuditEventBuilder.transaction_added(
            user_id="u1",
            transaction_id="r1",
            transaction_type="gasto",
            amount="300",
        )
        assert event.is_user_action is True
        assert event.entity_id == "r1"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
