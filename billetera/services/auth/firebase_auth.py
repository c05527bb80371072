"""
Firebase Authentication (email/password)

Talks to the Firebase Auth REST API. Only the email/password flows the
login screen offers are implemented.
"""

from typing import Any, Optional

import httpx

from billetera.config import FirebaseSettings, get_settings
from billetera.services.auth.interface import AuthError, AuthUser, BaseAuthProvider


# Provider error codes -> message shown on the login form
ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "Correo o contraseña incorrectos.",
    "INVALID_PASSWORD": "Correo o contraseña incorrectos.",
    "INVALID_LOGIN_CREDENTIALS": "Correo o contraseña incorrectos.",
    "INVALID_EMAIL": "El correo electrónico no es válido.",
    "MISSING_PASSWORD": "Ingresa tu contraseña.",
    "USER_DISABLED": "Esta cuenta ha sido deshabilitada.",
    "EMAIL_EXISTS": "Ya existe una cuenta con este correo.",
    "WEAK_PASSWORD": "La contraseña debe tener al menos 6 caracteres.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Demasiados intentos. Intenta más tarde.",
}
NETWORK_ERROR_MESSAGE = "No se pudo conectar. Revisa tu conexión e intenta de nuevo."
UNKNOWN_ERROR_MESSAGE = "No se pudo completar la autenticación."


def _error_code(payload: Any) -> Optional[str]:
    """Extract the bare error code, e.g. 'WEAK_PASSWORD : Password should...'."""
    try:
        message = payload["error"]["message"]
    except (KeyError, TypeError):
        return None
    return str(message).split(":", 1)[0].strip()


class FirebaseAuthProvider(BaseAuthProvider):
    """
    Email/password sign-in against Firebase Auth.

    A successful sign-in or registration switches the current user and
    notifies subscribers before returning.
    """

    def __init__(
        self,
        settings: Optional[FirebaseSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self._settings = settings or get_settings().firebase
        self._http = http_client or httpx.AsyncClient(
            timeout=self._settings.request_timeout_seconds
        )

    async def sign_in(self, email: str, password: str) -> AuthUser:
        user = await self._post("accounts:signInWithPassword", email, password)
        await self._set_user(user)
        return user

    async def register(self, email: str, password: str) -> AuthUser:
        user = await self._post("accounts:signUp", email, password)
        await self._set_user(user)
        return user

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, endpoint: str, email: str, password: str) -> AuthUser:
        url = f"{self._settings.auth_base_url.rstrip('/')}/{endpoint}"
        try:
            response = await self._http.post(
                url,
                params={"key": self._settings.api_key},
                json={
                    "email": email,
                    "password": password,
                    "returnSecureToken": True,
                },
            )
        except httpx.HTTPError as e:
            raise AuthError(NETWORK_ERROR_MESSAGE, code="NETWORK_ERROR") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code != 200:
            code = _error_code(payload)
            raise AuthError(ERROR_MESSAGES.get(code, UNKNOWN_ERROR_MESSAGE), code=code)

        if not isinstance(payload, dict) or not payload.get("localId"):
            raise AuthError(UNKNOWN_ERROR_MESSAGE, code="MALFORMED_RESPONSE")

        return AuthUser(
            uid=payload["localId"],
            email=payload.get("email") or email,
            display_name=payload.get("displayName") or None,
            id_token=payload.get("idToken"),
        )
