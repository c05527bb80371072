"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because:
1. One document per user maps directly onto the ledger groups
2. Sub-collections give transactions independently addressable records
3. Write batches give us the all-or-nothing legacy migration
4. Auth and storage share a single Firebase project

TRADEOFFS:
- Merge-writes from several devices are last-writer-wins (we assume one
  session per user)
- No server-side aggregation (we aggregate in Python)

The implementation follows the abstract interface, so tests and offline runs
use the in-memory store without changing business logic.
"""

from typing import Any, Optional

import google.auth
from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from billetera.config import FirebaseSettings, get_settings
from billetera.services.storage.interface import (
    DELETE_FIELD,
    BatchCommitError,
    BatchOperation,
    BatchOperationKind,
    ConnectionError,
    DocumentStoreInterface,
    NotFoundError,
    StorageError,
    StoredRecord,
)


# Errors worth another attempt; anything else fails immediately
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    gexc.Aborted,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.ResourceExhausted,
    gexc.ServiceUnavailable,
    gexc.TooManyRequests,
)

_retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)


def _to_firestore(data: dict[str, Any]) -> dict[str, Any]:
    """Translate our DELETE_FIELD sentinel into Firestore's."""
    return {
        key: firestore.DELETE_FIELD if value is DELETE_FIELD else value
        for key, value in data.items()
    }


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and lazily creates the async client. Honors
    FIRESTORE_EMULATOR_HOST like the underlying SDK does.
    """

    def __init__(self, settings: Optional[FirebaseSettings] = None):
        self._client: Optional[firestore.AsyncClient] = None
        self._settings = settings or get_settings().firebase

    def connect(self) -> firestore.AsyncClient:
        """
        Create the Firestore client.

        Uses the service account file when configured, Application Default
        Credentials otherwise.
        """
        if self._client is None:
            try:
                if self._settings.credentials_path:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                    )
                else:
                    credentials, _ = google.auth.default()
                self._client = firestore.AsyncClient(
                    project=self._settings.project_id,
                    credentials=credentials,
                )
            except FileNotFoundError:
                raise ConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except auth_exceptions.DefaultCredentialsError as e:
                raise ConnectionError(f"No Google credentials available: {e}")
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")

        return self._client


class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Firestore implementation of the document store.

    Reads and idempotent writes are retried on transient errors. Record
    creation is not retried: a retry after an ambiguous failure could create
    a duplicate record.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    @property
    def _db(self) -> firestore.AsyncClient:
        return self._client.connect()

    # ------------------------------------------------------------------
    # Raw SDK calls (retried)
    # ------------------------------------------------------------------

    @_retry_transient
    async def _get(self, path: str):
        return await self._db.document(path).get()

    @_retry_transient
    async def _set(self, path: str, data: dict[str, Any], merge: bool) -> None:
        await self._db.document(path).set(_to_firestore(data), merge=merge)

    @_retry_transient
    async def _stream(self, collection_path: str) -> list[StoredRecord]:
        return [
            StoredRecord(id=snapshot.id, data=snapshot.to_dict() or {})
            async for snapshot in self._db.collection(collection_path).stream()
        ]

    @_retry_transient
    async def _update(self, path: str, data: dict[str, Any]) -> None:
        await self._db.document(path).update(_to_firestore(data))

    @_retry_transient
    async def _delete(self, path: str) -> None:
        await self._db.document(path).delete()

    # ------------------------------------------------------------------
    # DocumentStoreInterface
    # ------------------------------------------------------------------

    async def read_document(self, path: str) -> Optional[dict[str, Any]]:
        try:
            snapshot = await self._get(path)
        except gexc.GoogleAPICallError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def write_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        try:
            await self._set(path, data, merge)
        except gexc.GoogleAPICallError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    async def create_record(self, collection_path: str, data: dict[str, Any]) -> str:
        try:
            ref = self._db.collection(collection_path).document()
            await ref.set(_to_firestore(data))
            return ref.id
        except gexc.GoogleAPICallError as e:
            raise StorageError(f"Failed to create record in {collection_path}: {e}") from e

    async def list_records(self, collection_path: str) -> list[StoredRecord]:
        try:
            return await self._stream(collection_path)
        except gexc.GoogleAPICallError as e:
            raise StorageError(f"Failed to list {collection_path}: {e}") from e

    async def update_record(self, record_path: str, data: dict[str, Any]) -> None:
        try:
            await self._update(record_path, data)
        except gexc.NotFound as e:
            raise NotFoundError(f"Record not found: {record_path}") from e
        except gexc.GoogleAPICallError as e:
            raise StorageError(f"Failed to update {record_path}: {e}") from e

    async def delete_record(self, record_path: str) -> None:
        try:
            await self._delete(record_path)
        except gexc.GoogleAPICallError as e:
            raise StorageError(f"Failed to delete {record_path}: {e}") from e

    async def atomic_batch(
        self,
        operations: list[BatchOperation],
    ) -> list[Optional[str]]:
        batch = self._db.batch()
        ids: list[Optional[str]] = []

        for operation in operations:
            record_id = None
            if operation.kind == BatchOperationKind.CREATE:
                ref = self._db.collection(operation.path).document()
                record_id = ref.id
                batch.set(ref, _to_firestore(operation.data))
            elif operation.kind == BatchOperationKind.SET:
                batch.set(
                    self._db.document(operation.path),
                    _to_firestore(operation.data),
                    merge=operation.merge,
                )
            elif operation.kind == BatchOperationKind.UPDATE:
                batch.update(
                    self._db.document(operation.path),
                    _to_firestore(operation.data),
                )
            elif operation.kind == BatchOperationKind.DELETE:
                batch.delete(self._db.document(operation.path))
            ids.append(record_id)

        try:
            await batch.commit()
        except gexc.GoogleAPICallError as e:
            raise BatchCommitError(f"Batch of {len(operations)} writes rejected: {e}") from e

        return ids
