"""
In-Memory Storage Implementation

A dict-backed DocumentStoreInterface for tests and offline development.
It mimics the Firestore semantics the ledger relies on: merge writes,
store-generated ids, NotFound on update of a missing record, and batches that
apply all operations or none.
"""

import copy
from typing import Any, Optional
from uuid import uuid4

from billetera.services.storage.interface import (
    DELETE_FIELD,
    BatchCommitError,
    BatchOperation,
    BatchOperationKind,
    DocumentStoreInterface,
    NotFoundError,
    StorageError,
    StoredRecord,
    record_path,
)


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def _apply_fields(
    target: dict[str, Any],
    data: dict[str, Any],
) -> dict[str, Any]:
    """Merge ``data`` into a copy of ``target`` honouring DELETE_FIELD."""
    result = dict(target)
    for key, value in data.items():
        if value is DELETE_FIELD:
            result.pop(key, None)
        else:
            result[key] = copy.deepcopy(value)
    return result


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Documents are kept in insertion order, so records list in the order they
    were created.
    """

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None):
        self._documents: dict[str, dict[str, Any]] = copy.deepcopy(documents or {})

    def new_id(self) -> str:
        return uuid4().hex[:20]

    @property
    def documents(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every stored document, keyed by path."""
        return copy.deepcopy(self._documents)

    async def read_document(self, path: str) -> Optional[dict[str, Any]]:
        document = self._documents.get(path)
        return copy.deepcopy(document) if document is not None else None

    async def write_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        self._documents = self._apply(
            self._documents, BatchOperation.set(path, data, merge=merge)
        )[0]

    async def create_record(self, collection_path: str, data: dict[str, Any]) -> str:
        documents, record_id = self._apply(
            self._documents, BatchOperation.create(collection_path, data)
        )
        self._documents = documents
        return record_id

    async def list_records(self, collection_path: str) -> list[StoredRecord]:
        return [
            StoredRecord(id=path.rsplit("/", 1)[1], data=copy.deepcopy(data))
            for path, data in self._documents.items()
            if _parent(path) == collection_path
        ]

    async def update_record(self, record_path: str, data: dict[str, Any]) -> None:
        self._documents = self._apply(
            self._documents, BatchOperation.update(record_path, data)
        )[0]

    async def delete_record(self, record_path: str) -> None:
        self._documents = self._apply(
            self._documents, BatchOperation.delete(record_path)
        )[0]

    async def atomic_batch(
        self,
        operations: list[BatchOperation],
    ) -> list[Optional[str]]:
        staged = self._documents
        ids: list[Optional[str]] = []
        try:
            for operation in operations:
                staged, record_id = self._apply(staged, operation)
                ids.append(record_id)
        except StorageError as e:
            raise BatchCommitError(f"Batch rejected, nothing applied: {e}") from e
        self._documents = staged
        return ids

    def _apply(
        self,
        documents: dict[str, dict[str, Any]],
        operation: BatchOperation,
    ) -> tuple[dict[str, dict[str, Any]], Optional[str]]:
        """Return a new documents mapping with ``operation`` applied."""
        documents = dict(documents)
        record_id = None

        if operation.kind == BatchOperationKind.CREATE:
            record_id = self.new_id()
            documents[record_path(operation.path, record_id)] = _apply_fields(
                {}, operation.data
            )
        elif operation.kind == BatchOperationKind.SET:
            base = documents.get(operation.path, {}) if operation.merge else {}
            documents[operation.path] = _apply_fields(base, operation.data)
        elif operation.kind == BatchOperationKind.UPDATE:
            if operation.path not in documents:
                raise NotFoundError(f"Document not found: {operation.path}")
            documents[operation.path] = _apply_fields(
                documents[operation.path], operation.data
            )
        elif operation.kind == BatchOperationKind.DELETE:
            documents.pop(operation.path, None)

        return documents, record_id
