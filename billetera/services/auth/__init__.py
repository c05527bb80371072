"""Authentication services package."""

from billetera.services.auth.firebase_auth import FirebaseAuthProvider
from billetera.services.auth.interface import (
    AuthError,
    AuthProviderInterface,
    AuthStateCallback,
    AuthUser,
    BaseAuthProvider,
)

__all__ = [
    "AuthError",
    "AuthProviderInterface",
    "AuthStateCallback",
    "AuthUser",
    "BaseAuthProvider",
    "FirebaseAuthProvider",
]
