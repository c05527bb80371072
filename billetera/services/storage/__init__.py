"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Firestore is the production backend; the in-memory store backs tests and
offline runs.
"""

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
from billetera.services.storage.firestore import (
    FirestoreClient,
    FirestoreDocumentStore,
)
from billetera.services.storage.memory import InMemoryDocumentStore
from billetera.services.storage.paths import LedgerPaths

__all__ = [
    # Interface
    "DELETE_FIELD",
    "BatchOperation",
    "BatchOperationKind",
    "DocumentStoreInterface",
    "LedgerPaths",
    "StoredRecord",
    # Exceptions
    "BatchCommitError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
]
