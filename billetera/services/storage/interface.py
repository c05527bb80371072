"""
Abstract Document Store Interface

DESIGN DECISION: The ledger core talks to the remote store only through this
capability interface. This allows us to:
1. Run against Firestore in production
2. Use in-memory storage for testing and offline development
3. Keep session, gateway and persistence logic decoupled from the SDK

The interface is intentionally small - it is exactly the set of operations
the ledger needs: read one document, merge-write it, and create/list/update/
delete individual records, plus one all-or-nothing batch.

Paths are slash-separated, e.g. ``users/{uid}`` for a document and
``users/{uid}/transactions`` for a record collection.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class _DeleteField:
    """Sentinel type for DELETE_FIELD."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"


# Use as a field value in update/merge writes to remove the field.
DELETE_FIELD = _DeleteField()


class BatchOperationKind(str, Enum):
    """Operations allowed inside an atomic batch."""
    CREATE = "create"  # new record with a store-generated id; path is the collection
    SET = "set"        # write a document (optionally merging)
    UPDATE = "update"  # update fields of an existing document
    DELETE = "delete"  # delete a document


class BatchOperation(BaseModel):
    """One write inside an atomic batch."""

    kind: BatchOperationKind
    path: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    merge: bool = False

    @classmethod
    def create(cls, collection_path: str, data: dict[str, Any]) -> "BatchOperation":
        return cls(kind=BatchOperationKind.CREATE, path=collection_path, data=data)

    @classmethod
    def set(cls, path: str, data: dict[str, Any], merge: bool = False) -> "BatchOperation":
        return cls(kind=BatchOperationKind.SET, path=path, data=data, merge=merge)

    @classmethod
    def update(cls, path: str, data: dict[str, Any]) -> "BatchOperation":
        return cls(kind=BatchOperationKind.UPDATE, path=path, data=data)

    @classmethod
    def delete(cls, path: str) -> "BatchOperation":
        return cls(kind=BatchOperationKind.DELETE, path=path)


class StoredRecord(BaseModel):
    """A record read back from a collection."""

    id: str
    data: dict[str, Any] = Field(default_factory=dict)


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the per-user document store.

    Any storage implementation (Firestore, in-memory, ...) must implement
    these methods. Every method may raise StorageError.
    """

    @abstractmethod
    async def read_document(self, path: str) -> Optional[dict[str, Any]]:
        """
        Read a single document.

        Args:
            path: Document path

        Returns:
            The document fields, or None if the document does not exist
        """
        pass

    @abstractmethod
    async def write_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Write a document.

        Args:
            path: Document path
            data: Fields to write
            merge: If True only the given fields are replaced; otherwise the
                   whole document is overwritten (``{}`` empties it)
        """
        pass

    @abstractmethod
    async def create_record(self, collection_path: str, data: dict[str, Any]) -> str:
        """
        Create a record with a store-generated id.

        Returns:
            The generated record id
        """
        pass

    @abstractmethod
    async def list_records(self, collection_path: str) -> list[StoredRecord]:
        """
        List every record of a collection in store order.

        An empty or missing collection yields an empty list.
        """
        pass

    @abstractmethod
    async def update_record(self, record_path: str, data: dict[str, Any]) -> None:
        """
        Update some fields of an existing record.

        Raises:
            NotFoundError: If the record does not exist
        """
        pass

    @abstractmethod
    async def delete_record(self, record_path: str) -> None:
        """Delete a record. Deleting a missing record is not an error."""
        pass

    @abstractmethod
    async def atomic_batch(
        self,
        operations: list[BatchOperation],
    ) -> list[Optional[str]]:
        """
        Apply all operations or none of them.

        Returns:
            One entry per operation: the generated id for CREATE operations,
            None for the others

        Raises:
            BatchCommitError: If the batch could not be committed; nothing
                              has been applied
        """
        pass

    async def delete_collection_snapshot(self, collection_path: str) -> int:
        """
        Delete every record currently in a collection, in one batch.

        Records created after the listing are not affected.

        Returns:
            Number of records deleted
        """
        records = await self.list_records(collection_path)
        if not records:
            return 0
        await self.atomic_batch([
            BatchOperation.delete(record_path(collection_path, record.id))
            for record in records
        ])
        return len(records)


def join_path(*segments: str) -> str:
    """Join path segments, rejecting empty ones."""
    if not segments or any(not s or "/" in s for s in segments):
        raise ValueError(f"Invalid path segments: {segments!r}")
    return "/".join(segments)


def record_path(collection_path: str, record_id: str) -> str:
    """Path of one record inside an already-built collection path."""
    if not collection_path or not record_id or "/" in record_id:
        raise ValueError(f"Invalid record id {record_id!r} for {collection_path!r}")
    return f"{collection_path}/{record_id}"


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class BatchCommitError(StorageError):
    """An atomic batch was rejected; none of its writes were applied."""
    pass
