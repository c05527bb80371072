"""
Abstract Authentication Interface

The ledger only needs four things from an auth provider: sign in, register,
sign out, and a stream of auth state changes. Everything else (tokens,
refresh, password reset) stays inside the provider.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field


class AuthUser(BaseModel):
    """The signed-in user as reported by the provider."""

    uid: str = Field(..., min_length=1)
    email: Optional[str] = None
    display_name: Optional[str] = None
    id_token: Optional[str] = Field(default=None, repr=False)


# Called with the new user, or None on sign-out
AuthStateCallback = Callable[[Optional[AuthUser]], Awaitable[None]]


class AuthError(Exception):
    """
    Sign-in or registration failed.

    ``message`` is safe to show inline on the login form.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthProviderInterface(ABC):
    """Abstract interface for authentication providers."""

    @property
    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        pass

    @abstractmethod
    async def on_auth_state_change(
        self,
        callback: AuthStateCallback,
    ) -> Callable[[], None]:
        """
        Subscribe to auth state changes.

        The callback runs once right away with the current state and then on
        every transition.

        Returns:
            A callable that unsubscribes the callback
        """
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthUser:
        """
        Raises:
            AuthError: Invalid credentials or network failure
        """
        pass

    @abstractmethod
    async def register(self, email: str, password: str) -> AuthUser:
        """
        Raises:
            AuthError: Email taken, weak password or network failure
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass


class BaseAuthProvider(AuthProviderInterface):
    """
    Listener plumbing shared by concrete providers.

    Callbacks are awaited one after another in subscription order, so a
    session load finishes before ``sign_in`` returns. Errors raised by a
    callback propagate to whoever triggered the transition.
    """

    def __init__(self):
        self._user: Optional[AuthUser] = None
        self._callbacks: list[AuthStateCallback] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    async def on_auth_state_change(
        self,
        callback: AuthStateCallback,
    ) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        try:
            await callback(self._user)
        except Exception:
            # the caller never receives the handle, so do not keep the callback
            unsubscribe()
            raise
        return unsubscribe

    async def _set_user(self, user: Optional[AuthUser]) -> None:
        self._user = user
        for callback in list(self._callbacks):
            await callback(user)

    async def sign_out(self) -> None:
        if self._user is None:
            return
        await self._set_user(None)
