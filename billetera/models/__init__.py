"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data flowing between the core, the UI and the remote store must conform
to these schemas.
"""

from billetera.models.ledger import (
    Acquisition,
    Card,
    CategorySet,
    LedgerGroup,
    PaidMonths,
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

__all__ = [
    # Ledger models
    "Acquisition",
    "Card",
    "CategorySet",
    "LedgerGroup",
    "PaidMonths",
    "Transaction",
    "TransactionDraft",
    "TransactionPatch",
    "TransactionType",
    "UserProfile",
    "WishlistItem",
    "default_cards",
    "paid_month_key",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
