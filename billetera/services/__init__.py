"""Services package."""

from billetera.services.auth import (
    AuthError,
    AuthProviderInterface,
    AuthUser,
    BaseAuthProvider,
    FirebaseAuthProvider,
)
from billetera.services.storage import (
    DELETE_FIELD,
    BatchCommitError,
    BatchOperation,
    ConnectionError,
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    LedgerPaths,
    NotFoundError,
    StorageError,
    StoredRecord,
)

__all__ = [
    # Auth services
    "AuthError",
    "AuthProviderInterface",
    "AuthUser",
    "BaseAuthProvider",
    "FirebaseAuthProvider",
    # Storage services
    "DELETE_FIELD",
    "BatchCommitError",
    "BatchOperation",
    "ConnectionError",
    "DocumentStoreInterface",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "LedgerPaths",
    "NotFoundError",
    "StorageError",
    "StoredRecord",
]
