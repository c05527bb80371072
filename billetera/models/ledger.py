"""
Core Data Models for the Billetera ledger

These models define the strict schemas for every entity a signed-in user owns:
profile, categories, cards, transactions, wishlist, acquisitions and
paid card periods.

They are designed to:
1. Enforce type safety at runtime (amounts are never negative)
2. Round-trip cleanly to the remote document store (camelCase wire names,
   amounts as JSON numbers, dates as ISO strings)
3. Keep the two identifier schemes apart: transactions carry an opaque
   store-assigned string id, acquisitions a locally-assigned integer id

DESIGN DECISION: Amounts are Decimal in memory so totals are exact, but are
serialized as plain numbers because that is what existing user documents hold.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
)


def _coerce_amount(value: Any) -> Any:
    """Floats go through str() so 0.1 stays Decimal('0.1')."""
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _coerce_date(value: Any) -> Any:
    """Accept ISO timestamps from older clients by keeping the date part."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value


Amount = Annotated[
    Decimal,
    BeforeValidator(_coerce_amount),
    Field(ge=0),
    PlainSerializer(float, return_type=float, when_used="json"),
]

CalendarDate = Annotated[date, BeforeValidator(_coerce_date)]

# card id + year + month -> paid flag
PaidMonths = dict[str, bool]


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """
    Kind of money movement.

    The sign is implied by the type, never stored on the amount.
    """
    INGRESO = "ingreso"  # income
    GASTO = "gasto"      # expense
    AHORRO = "ahorro"    # transfer into savings


class LedgerGroup(str, Enum):
    """
    Top-level field groups of the user document.

    Values are the field names used in ``users/{uid}``. Each group is
    persisted independently; transactions are NOT a group.
    """
    PROFILE = "userData"
    CATEGORIES = "categories"
    CARDS = "cards"
    WISHLIST = "wishlist"
    ACQUISITIONS = "acquisitions"
    PAID_MONTHS = "paidMonths"


# =============================================================================
# PROFILE, CATEGORIES, CARDS
# =============================================================================

class UserProfile(BaseModel):
    """Singleton profile of the signed-in user."""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: str = Field(default="Usuario", max_length=200)
    phone: str = Field(default="", max_length=50)
    email: str = Field(default="", max_length=320)
    country_code: str = Field(
        default="+56",
        alias="countryCode",
        max_length=8,
        description="Country dialing code"
    )


DEFAULT_INCOME_CATEGORIES = ["Salario", "Ventas", "Freelance"]
DEFAULT_EXPENSE_CATEGORIES = [
    "Alimentación",
    "Transporte",
    "Servicios",
    "Ocio",
    "Salud",
    "Educación",
    "Pago Tarjeta",
]


class CategorySet(BaseModel):
    """
    Named category lists per transaction type.

    Order is kept for display only. Membership is not enforced on
    transactions.
    """

    ingreso: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INCOME_CATEGORIES)
    )
    gasto: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXPENSE_CATEGORIES)
    )

    def for_type(self, transaction_type: TransactionType) -> list[str]:
        """Categories offered for a transaction type (savings has none)."""
        if transaction_type == TransactionType.INGRESO:
            return self.ingreso
        if transaction_type == TransactionType.GASTO:
            return self.gasto
        return []


class Card(BaseModel):
    """A credit card the user tracks."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., ge=0, description="Locally assigned card id")
    name: str = Field(..., min_length=1, max_length=100)
    limit: Amount = Field(..., description="Credit limit")


def default_cards() -> list[Card]:
    return [
        Card(id=1, name="Visa Principal", limit=Decimal("1000000")),
        Card(id=2, name="Mastercard", limit=Decimal("500000")),
    ]


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A transaction before the store has assigned it an id.

    This is what the UI hands to the gateway when the user adds a movement.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    type: TransactionType
    amount: Amount
    category: str = Field(default="", max_length=100)
    date: CalendarDate
    card_id: Optional[int] = Field(
        default=None,
        alias="cardId",
        description="Card the expense was charged to, if any"
    )
    description: Optional[str] = Field(default=None, max_length=500)

    def to_record(self) -> dict[str, Any]:
        """Wire form stored in the transaction record collection."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id"},
            exclude_none=True,
        )


class Transaction(TransactionDraft):
    """
    A persisted transaction.

    CRITICAL: ``id`` always comes from the remote store. It is never
    generated locally and never reused.
    """

    id: str = Field(..., min_length=1, description="Store-assigned record id")

    @classmethod
    def from_draft(cls, draft: TransactionDraft, record_id: str) -> "Transaction":
        return cls(id=record_id, **draft.model_dump())

    @classmethod
    def from_record(cls, record_id: str, data: dict[str, Any]) -> "Transaction":
        """
        Build a transaction from a stored record.

        Legacy entries may carry their own ``id`` key; the store id wins.
        """
        return cls.model_validate({**data, "id": record_id})


class TransactionPatch(BaseModel):
    """The three fields an edit is allowed to change."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(default="", max_length=500)
    amount: Amount
    date: CalendarDate

    @classmethod
    def from_form(
        cls,
        description: str,
        amount_text: str,
        date_text: str,
    ) -> "TransactionPatch":
        """
        Parse the edit form's text fields.

        Raises:
            ValueError: If the amount or the date cannot be parsed
        """
        try:
            amount = Decimal(amount_text.strip().replace(",", "."))
        except (InvalidOperation, AttributeError):
            raise ValueError(f"Monto inválido: {amount_text!r}")
        if not amount.is_finite():
            raise ValueError(f"Monto inválido: {amount_text!r}")
        return cls(
            description=description,
            amount=amount,
            date=date.fromisoformat(date_text.strip()),
        )

    def to_update(self) -> dict[str, Any]:
        """Wire form of the update: exactly description, amount and date."""
        return self.model_dump(mode="json")


# =============================================================================
# SAVINGS
# =============================================================================

class WishlistItem(BaseModel):
    """A savings goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., ge=0)
    name: str = Field(..., min_length=1, max_length=200)
    price: Amount = Field(default=Decimal("0"))
    url: Optional[str] = None


class Acquisition(BaseModel):
    """
    A purchase paid out of the savings fund.

    DESIGN DECISION: acquisitions live inside the user document and use
    numeric ids assigned on the device. Deleting one filters the local list;
    there is no per-record remote delete.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., ge=0, description="Locally assigned numeric id")
    name: str = Field(..., min_length=1, max_length=200)
    amount: Amount
    date: Optional[CalendarDate] = None


def paid_month_key(card_id: int, year: int, month: int) -> str:
    """
    Key of a card payment period in ``paidMonths``.

    Months are 1-12.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return f"{card_id}-{year}-{month}"
