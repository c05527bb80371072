"""
Shared fixtures.

No real Firestore or Firebase calls are made in tests: the in-memory store
stands in for Firestore and a fake provider stands in for Firebase Auth.
"""

from collections import Counter
from typing import Any, Optional

import pytest

from billetera.audit import AuditLogger
from billetera.gateway import MutationGateway
from billetera.reflector import PersistenceReflector
from billetera.services.auth import AuthError, AuthUser, BaseAuthProvider
from billetera.services.storage import (
    BatchCommitError,
    BatchOperation,
    InMemoryDocumentStore,
    StorageError,
)
from billetera.session import SessionController
from billetera.store import LedgerStore


class FlakyDocumentStore(InMemoryDocumentStore):
    """
    In-memory store that counts calls and fails on demand.

    ``fail_on`` maps a method name to the number of upcoming calls that
    should raise StorageError.
    """

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None):
        super().__init__(documents)
        self.calls: Counter = Counter()
        self.writes: list[tuple[str, dict[str, Any], bool]] = []
        self.fail_on: dict[str, int] = {}

    def _maybe_fail(self, method: str) -> None:
        self.calls[method] += 1
        remaining = self.fail_on.get(method, 0)
        if remaining:
            self.fail_on[method] = remaining - 1
            if method == "atomic_batch":
                raise BatchCommitError("injected batch failure")
            raise StorageError(f"injected {method} failure")

    async def read_document(self, path: str):
        self._maybe_fail("read_document")
        return await super().read_document(path)

    async def write_document(self, path: str, data: dict[str, Any], merge: bool = False):
        self._maybe_fail("write_document")
        self.writes.append((path, data, merge))
        await super().write_document(path, data, merge)

    async def create_record(self, collection_path: str, data: dict[str, Any]) -> str:
        self._maybe_fail("create_record")
        return await super().create_record(collection_path, data)

    async def list_records(self, collection_path: str):
        self._maybe_fail("list_records")
        return await super().list_records(collection_path)

    async def update_record(self, record_path: str, data: dict[str, Any]):
        self._maybe_fail("update_record")
        await super().update_record(record_path, data)

    async def delete_record(self, record_path: str):
        self._maybe_fail("delete_record")
        await super().delete_record(record_path)

    async def atomic_batch(self, operations: list[BatchOperation]):
        self._maybe_fail("atomic_batch")
        return await super().atomic_batch(operations)


class FakeAuthProvider(BaseAuthProvider):
    """Signs anybody in whose password is not 'wrong'."""

    async def sign_in(self, email: str, password: str) -> AuthUser:
        if password == "wrong":
            raise AuthError("Correo o contraseña incorrectos.", code="INVALID_PASSWORD")
        user = AuthUser(uid=f"uid-{email.split('@')[0]}", email=email)
        await self._set_user(user)
        return user

    async def register(self, email: str, password: str) -> AuthUser:
        return await self.sign_in(email, password)


@pytest.fixture
def user() -> AuthUser:
    return AuthUser(uid="u1", email="ana@example.com")


@pytest.fixture
def documents() -> FlakyDocumentStore:
    return FlakyDocumentStore()


@pytest.fixture
def store() -> LedgerStore:
    return LedgerStore()


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()


@pytest.fixture
def session(store, documents, audit_logger) -> SessionController:
    return SessionController(store, documents, audit_logger=audit_logger)


@pytest.fixture
def gateway(store, documents, session, audit_logger) -> MutationGateway:
    return MutationGateway(store, documents, session, audit_logger)


@pytest.fixture
def reflector(store, documents, session, audit_logger) -> PersistenceReflector:
    return PersistenceReflector(store, documents, session, audit_logger)
