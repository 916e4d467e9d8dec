"""Error taxonomy for CareBridge.

All errors raised by the domain layer and the external collaborators derive
from PortalError so callers can surface them inline with a single handler:

- ValidationError: malformed or missing user input (empty proposal, password mismatch)
- AuthError: credential/account conflicts, classified by AuthErrorCode
- ForbiddenTransition: role-gated state machine or negotiator rule violated
- RemoteUnavailable: document store or LLM call failed or timed out
"""

from enum import Enum
from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for all CareBridge errors."""

    default_code = "PORTAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(PortalError):
    """Input rejected before any write was issued."""

    default_code = "VALIDATION_ERROR"


class ForbiddenTransition(PortalError):
    """Actor is not allowed to perform this transition in the current state."""

    default_code = "FORBIDDEN_TRANSITION"


class RemoteUnavailable(PortalError):
    """External store, auth or LLM collaborator call failed."""

    default_code = "REMOTE_UNAVAILABLE"


class AuthErrorCode(str, Enum):
    """Classification of auth collaborator failures."""

    INVALID_CREDENTIAL = "invalid-credential"
    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    WEAK_PASSWORD = "weak-password"
    OTHER = "other"

    @property
    def user_message(self) -> str:
        """Inline message suitable for the sign-in / sign-up forms"""
        return _AUTH_MESSAGES[self]


_AUTH_MESSAGES = {
    AuthErrorCode.INVALID_CREDENTIAL: "Invalid credentials. Please check your email and password.",
    AuthErrorCode.EMAIL_ALREADY_IN_USE: "This email address is already in use.",
    AuthErrorCode.WEAK_PASSWORD: "The password is too weak. It should be at least 6 characters.",
    AuthErrorCode.OTHER: "An unexpected error occurred. Please try again.",
}


class AuthError(PortalError):
    """Sign-in / sign-up failure reported by the auth collaborator."""

    default_code = "AUTH_ERROR"

    def __init__(
        self,
        code: AuthErrorCode,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or code.user_message, error_code=code.value, context=context)
        self.code = code
