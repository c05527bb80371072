"""
In-memory Ledger Store

Holds the canonical copy of everything a signed-in user owns. Group setters
notify listeners so persistence can follow; transaction list mutators do not,
because transactions are persisted record by record by the gateway.
"""

from typing import Any, Callable, Optional

from pydantic import TypeAdapter

from billetera.models.ledger import (
    Acquisition,
    Card,
    CategorySet,
    LedgerGroup,
    PaidMonths,
    Transaction,
    UserProfile,
    WishlistItem,
    default_cards,
    paid_month_key,
)

GroupListener = Callable[[LedgerGroup, Any], None]


def default_group(group: LedgerGroup) -> Any:
    """Fresh default value of a group."""
    if group == LedgerGroup.PROFILE:
        return UserProfile()
    if group == LedgerGroup.CATEGORIES:
        return CategorySet()
    if group == LedgerGroup.CARDS:
        return default_cards()
    if group == LedgerGroup.PAID_MONTHS:
        return {}
    return []


def parse_group(group: LedgerGroup, raw: Any) -> Any:
    """
    Validate a group read from the user document.

    Raises:
        pydantic.ValidationError: If the stored value does not fit the schema
    """
    if group == LedgerGroup.PROFILE:
        return UserProfile.model_validate(raw)
    if group == LedgerGroup.CATEGORIES:
        return CategorySet.model_validate(raw)
    if group in _ITEM_LISTS:
        return _ITEM_LISTS[group].validate_python(raw)
    return _PAID_MONTHS.validate_python(raw)


def serialize_group(group: LedgerGroup, value: Any) -> Any:
    """Wire form of a group value."""
    if group == LedgerGroup.PROFILE:
        return value.model_dump(mode="json", by_alias=True)
    if group == LedgerGroup.CATEGORIES:
        return value.model_dump(mode="json")
    if group == LedgerGroup.PAID_MONTHS:
        return dict(value)
    return [item.model_dump(mode="json", exclude_none=True) for item in value]


_ITEM_LISTS = {
    LedgerGroup.CARDS: TypeAdapter(list[Card]),
    LedgerGroup.WISHLIST: TypeAdapter(list[WishlistItem]),
    LedgerGroup.ACQUISITIONS: TypeAdapter(list[Acquisition]),
}
_PAID_MONTHS = TypeAdapter(PaidMonths)


class LedgerStore:
    """
    Typed holder of a user's ledger.

    Lists handed out are the store's own; callers replace them through the
    setters rather than mutating in place, so list identity changes on every
    update (the summary cache relies on this).
    """

    def __init__(self):
        self._listeners: list[GroupListener] = []
        self._apply_defaults()

    def _apply_defaults(self) -> None:
        self.profile: UserProfile = UserProfile()
        self.categories: CategorySet = CategorySet()
        self.cards: list[Card] = default_cards()
        self.transactions: list[Transaction] = []
        self.wishlist: list[WishlistItem] = []
        self.acquisitions: list[Acquisition] = []
        self.paid_months: PaidMonths = {}

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: GroupListener) -> Callable[[], None]:
        """Register a group-change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, group: LedgerGroup) -> None:
        payload = self.group_payload(group)
        for listener in list(self._listeners):
            listener(group, payload)

    # ------------------------------------------------------------------
    # Group setters
    # ------------------------------------------------------------------

    def set_profile(self, profile: UserProfile) -> None:
        self.profile = profile
        self._notify(LedgerGroup.PROFILE)

    def set_categories(self, categories: CategorySet) -> None:
        self.categories = categories
        self._notify(LedgerGroup.CATEGORIES)

    def set_cards(self, cards: list[Card]) -> None:
        self.cards = list(cards)
        self._notify(LedgerGroup.CARDS)

    def set_wishlist(self, wishlist: list[WishlistItem]) -> None:
        self.wishlist = list(wishlist)
        self._notify(LedgerGroup.WISHLIST)

    def set_acquisitions(self, acquisitions: list[Acquisition]) -> None:
        self.acquisitions = list(acquisitions)
        self._notify(LedgerGroup.ACQUISITIONS)

    def set_paid_months(self, paid_months: PaidMonths) -> None:
        self.paid_months = dict(paid_months)
        self._notify(LedgerGroup.PAID_MONTHS)

    def set_paid_month(self, card_id: int, year: int, month: int, paid: bool) -> None:
        """Mark or unmark one card period as paid. Unpaid periods drop their key."""
        paid_months = dict(self.paid_months)
        key = paid_month_key(card_id, year, month)
        if paid:
            paid_months[key] = True
        else:
            paid_months.pop(key, None)
        self.set_paid_months(paid_months)

    def next_acquisition_id(self) -> int:
        """Next free numeric acquisition id."""
        return max((a.id for a in self.acquisitions), default=0) + 1

    def load_groups(self, groups: dict[LedgerGroup, Any]) -> None:
        """
        Replace several groups at once without notifying listeners.

        Used when the groups come from the remote document itself.
        """
        for group, value in groups.items():
            if group == LedgerGroup.PROFILE:
                self.profile = value
            elif group == LedgerGroup.CATEGORIES:
                self.categories = value
            elif group == LedgerGroup.CARDS:
                self.cards = list(value)
            elif group == LedgerGroup.WISHLIST:
                self.wishlist = list(value)
            elif group == LedgerGroup.ACQUISITIONS:
                self.acquisitions = list(value)
            elif group == LedgerGroup.PAID_MONTHS:
                self.paid_months = dict(value)

    # ------------------------------------------------------------------
    # Transactions (not reflected as a group)
    # ------------------------------------------------------------------

    def set_transactions(self, transactions: list[Transaction]) -> None:
        self.transactions = list(transactions)

    def prepend_transaction(self, transaction: Transaction) -> None:
        self.transactions = [transaction, *self.transactions]

    def replace_transaction(self, transaction: Transaction) -> None:
        self.transactions = [
            transaction if t.id == transaction.id else t
            for t in self.transactions
        ]

    def remove_transaction(self, transaction_id: str) -> None:
        self.transactions = [t for t in self.transactions if t.id != transaction_id]

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    # ------------------------------------------------------------------
    # Serialization / lifecycle
    # ------------------------------------------------------------------

    def group_value(self, group: LedgerGroup) -> Any:
        """Current in-memory value of a group."""
        return {
            LedgerGroup.PROFILE: self.profile,
            LedgerGroup.CATEGORIES: self.categories,
            LedgerGroup.CARDS: self.cards,
            LedgerGroup.WISHLIST: self.wishlist,
            LedgerGroup.ACQUISITIONS: self.acquisitions,
            LedgerGroup.PAID_MONTHS: self.paid_months,
        }[group]

    def group_payload(self, group: LedgerGroup) -> Any:
        """Wire value of a group as stored in the user document."""
        return serialize_group(group, self.group_value(group))

    def reset(self) -> None:
        """
        Restore every entity to its default value.

        Listeners are not notified: a reset must never reach the remote
        document.
        """
        self._apply_defaults()
