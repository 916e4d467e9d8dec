"""Auth provider backed by the hosted identity REST API.

Endpoints (relative to base_url, API key as the ``key`` query parameter):
    POST /accounts:signInWithPassword   {"email", "password", "returnSecureToken"}
    POST /accounts:signUp               {"email", "password", "returnSecureToken"}
    POST {refresh_url}                  {"grant_type": "refresh_token", "refresh_token"}

Failures come back as ``{"error": {"message": "EMAIL_EXISTS", ...}}``; the
message is mapped to an AuthErrorCode.
"""

import logging
from typing import Any, Dict, Optional

import httpx
import jwt

from cb_core_lib.auth.base import AuthProvider
from cb_core_lib.auth.session import AuthSession
from cb_core_lib.clients.base import BaseServiceClient
from cb_core_lib.exceptions import AuthError, AuthErrorCode, RemoteUnavailable

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_URL = "https://securetoken.googleapis.com/v1/token"

_ERROR_CODES = {
    "INVALID_LOGIN_CREDENTIALS": AuthErrorCode.INVALID_CREDENTIAL,
    "INVALID_PASSWORD": AuthErrorCode.INVALID_CREDENTIAL,
    "EMAIL_NOT_FOUND": AuthErrorCode.INVALID_CREDENTIAL,
    "INVALID_EMAIL": AuthErrorCode.INVALID_CREDENTIAL,
    "EMAIL_EXISTS": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "WEAK_PASSWORD": AuthErrorCode.WEAK_PASSWORD,
}


def classify_error(message: str) -> AuthErrorCode:
    """Map a backend error message (e.g. "WEAK_PASSWORD : Password should be...") to a code."""
    key = message.split(":", 1)[0].strip().upper()
    return _ERROR_CODES.get(key, AuthErrorCode.OTHER)


def _error_message(response: httpx.Response) -> str:
    """The backend error message, e.g. EMAIL_EXISTS, or the raw body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return response.text


class IdentityToolkitAuthProvider(BaseServiceClient, AuthProvider):
    """Email/password auth against the identity REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        refresh_url: str = DEFAULT_REFRESH_URL,
        refresh_buffer_seconds: int = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        BaseServiceClient.__init__(self, base_url=base_url, timeout=timeout, transport=transport)
        AuthProvider.__init__(self, refresh_buffer_seconds=refresh_buffer_seconds)
        self.api_key = api_key
        self.refresh_url = refresh_url

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Build from an AuthSettings instance."""
        if settings.api_key is None:
            raise ValueError("CAREBRIDGE_AUTH_API_KEY is not configured")
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key.get_secret_value(),
            timeout=settings.request_timeout,
            refresh_buffer_seconds=settings.refresh_buffer_seconds,
            transport=transport,
        )

    async def _post(self, url: str, body: Dict[str, Any], operation: str) -> Dict[str, Any]:
        try:
            async with self._get_client() as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Identity {operation} request failed: {e}")
            raise RemoteUnavailable(
                f"Identity service unreachable during {operation}: {e}",
                context={"operation": operation},
            ) from e

        if response.status_code >= 400:
            message = _error_message(response)
            code = classify_error(message)
            logger.warning(f"Identity {operation} rejected: {message} ({code.value})")
            raise AuthError(code, context={"operation": operation, "backend_message": message})

        try:
            payload = response.json()
        except ValueError as e:
            raise self._unreadable(operation, response) from e
        if not isinstance(payload, dict):
            raise self._unreadable(operation, response)
        return payload

    def _unreadable(self, operation: str, response: httpx.Response) -> RemoteUnavailable:
        logger.error(f"Identity {operation} returned an unreadable body")
        return RemoteUnavailable(
            f"Identity service returned an unreadable {operation} response",
            context={"operation": operation, "status": response.status_code},
        )

    def _session_from(self, payload: Dict[str, Any]) -> AuthSession:
        try:
            return AuthSession.from_id_token(payload["idToken"], payload.get("refreshToken"))
        except (KeyError, jwt.InvalidTokenError) as e:
            raise AuthError(AuthErrorCode.OTHER, context={"reason": str(e)}) from e

    async def _sign_in(self, email: str, password: str) -> AuthSession:
        payload = await self._post(
            f"{self.base_url}/accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
            "sign-in",
        )
        return self._session_from(payload)

    async def _sign_up(self, email: str, password: str) -> AuthSession:
        payload = await self._post(
            f"{self.base_url}/accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
            "sign-up",
        )
        return self._session_from(payload)

    async def _refresh(self, session: AuthSession) -> AuthSession:
        if not session.refresh_token:
            raise AuthError(AuthErrorCode.OTHER, "Session has no refresh token")
        payload = await self._post(
            self.refresh_url,
            {"grant_type": "refresh_token", "refresh_token": session.refresh_token},
            "refresh",
        )
        # The token endpoint answers in snake_case
        return self._session_from({
            "idToken": payload.get("id_token"),
            "refreshToken": payload.get("refresh_token", session.refresh_token),
        })
