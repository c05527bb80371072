"""Per-user document and collection paths."""

from typing import Optional

from billetera.config import StoreSettings
from billetera.services.storage.interface import join_path


class LedgerPaths:
    """
    Builds the remote layout of one user's ledger:

        users/{uid}                  profile document (groups as fields)
        users/{uid}/transactions     transaction record collection
    """

    def __init__(self, settings: Optional[StoreSettings] = None):
        self._settings = settings or StoreSettings()

    @property
    def legacy_field(self) -> str:
        return self._settings.legacy_transactions_field

    def user_document(self, uid: str) -> str:
        return join_path(self._settings.users_collection, uid)

    def transactions_collection(self, uid: str) -> str:
        return join_path(
            self._settings.users_collection,
            uid,
            self._settings.transactions_collection,
        )

    def transaction_record(self, uid: str, transaction_id: str) -> str:
        return join_path(
            self._settings.users_collection,
            uid,
            self._settings.transactions_collection,
            transaction_id,
        )
