"""
Ledger Aggregation

DESIGN DECISION: Every figure shown to the user is DERIVED from the
transaction list on demand. Nothing here is stored or maintained
incrementally, and nothing here performs I/O.

Transactions may reference cards that no longer exist. Per-card figures simply
ignore them; overall totals still count them.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from billetera.models.ledger import (
    Acquisition,
    Card,
    PaidMonths,
    Transaction,
    TransactionType,
    paid_month_key,
)

ZERO = Decimal("0")


class LedgerSummary(BaseModel):
    """Income, expense and savings totals."""
    model_config = ConfigDict(frozen=True)

    ingresos: Decimal = ZERO
    egresos: Decimal = ZERO
    ahorros: Decimal = ZERO

    @property
    def total_balance(self) -> Decimal:
        """Balance = income - expenses - money moved to savings."""
        return self.ingresos - self.egresos - self.ahorros


class CardPeriodState(BaseModel):
    """Spending on one card during one calendar month."""
    model_config = ConfigDict(frozen=True)

    card_id: int
    year: int
    month: int = Field(ge=1, le=12)
    spent: Decimal = ZERO
    paid: bool = False


class CardUsage(BaseModel):
    """Credit used and still available on a card."""
    model_config = ConfigDict(frozen=True)

    card_id: int
    limit: Decimal
    used: Decimal = ZERO

    @property
    def available(self) -> Decimal:
        return self.limit - self.used


def summarize(transactions: Iterable[Transaction]) -> LedgerSummary:
    """Single pass over the transactions."""
    ingresos = egresos = ahorros = ZERO
    for transaction in transactions:
        if transaction.type == TransactionType.INGRESO:
            ingresos += transaction.amount
        elif transaction.type == TransactionType.GASTO:
            egresos += transaction.amount
        elif transaction.type == TransactionType.AHORRO:
            ahorros += transaction.amount
    return LedgerSummary(ingresos=ingresos, egresos=egresos, ahorros=ahorros)


class SummaryCache:
    """
    Memoizes the summary of the last list seen.

    Keyed by list identity: the store swaps in a new list on every change,
    so an identical object means identical contents.
    """

    def __init__(self):
        self._source: Optional[Sequence[Transaction]] = None
        self._summary: LedgerSummary = LedgerSummary()

    def get(self, transactions: Sequence[Transaction]) -> LedgerSummary:
        if self._source is not transactions:
            self._summary = summarize(transactions)
            self._source = transactions
        return self._summary


def category_totals(
    transactions: Iterable[Transaction],
    transaction_type: TransactionType,
) -> dict[str, Decimal]:
    """
    Total per category for one transaction type, largest first.

    Uncategorized movements are grouped under an empty string.
    """
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for transaction in transactions:
        if transaction.type == transaction_type:
            totals[transaction.category] += transaction.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def monthly_totals(
    transactions: Iterable[Transaction],
) -> dict[tuple[int, int], LedgerSummary]:
    """Summary per (year, month), oldest month first."""
    buckets: dict[tuple[int, int], list[Transaction]] = defaultdict(list)
    for transaction in transactions:
        buckets[(transaction.date.year, transaction.date.month)].append(transaction)
    return {period: summarize(buckets[period]) for period in sorted(buckets)}


def card_period_state(
    card: Card,
    transactions: Iterable[Transaction],
    paid_months: PaidMonths,
    year: int,
    month: int,
) -> CardPeriodState:
    """Expenses charged to ``card`` in the given month and whether it was paid."""
    spent = ZERO
    for transaction in transactions:
        if (
            transaction.type == TransactionType.GASTO
            and transaction.card_id == card.id
            and transaction.date.year == year
            and transaction.date.month == month
        ):
            spent += transaction.amount
    return CardPeriodState(
        card_id=card.id,
        year=year,
        month=month,
        spent=spent,
        paid=bool(paid_months.get(paid_month_key(card.id, year, month), False)),
    )


def card_usage(
    card: Card,
    transactions: Iterable[Transaction],
    paid_months: PaidMonths,
) -> CardUsage:
    """
    Credit in use on a card.

    Expenses count against the limit until their month is marked paid.
    """
    used = ZERO
    for transaction in transactions:
        if transaction.type != TransactionType.GASTO or transaction.card_id != card.id:
            continue
        key = paid_month_key(card.id, transaction.date.year, transaction.date.month)
        if not paid_months.get(key, False):
            used += transaction.amount
    return CardUsage(card_id=card.id, limit=card.limit, used=used)


def savings_fund(
    transactions: Iterable[Transaction],
    acquisitions: Iterable[Acquisition],
) -> Decimal:
    """Money moved to savings minus what was spent on acquisitions."""
    saved = summarize(transactions).ahorros
    spent = sum((a.amount for a in acquisitions), ZERO)
    return saved - spent
