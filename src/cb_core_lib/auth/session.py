"""Signed-in session state."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    """Identity of the signed-in physician.

    Attributes:
        uid: Auth user id (also the users document id)
        email: Sign-in email
        id_token: Bearer token sent to the document store
        refresh_token: Token used to obtain a new id_token
        expires_at: Epoch seconds at which id_token stops being accepted
    """

    uid: str
    email: Optional[str]
    id_token: str
    refresh_token: Optional[str] = None
    expires_at: float = 0

    @classmethod
    def from_id_token(cls, id_token: str, refresh_token: Optional[str] = None) -> 'AuthSession':
        """Build a session from an id token, reading uid/email/exp from its claims.

        The signature is checked by the backend on every request; the client
        only needs the claims.

        Raises:
            jwt.InvalidTokenError: If the token cannot be decoded
        """
        claims = jwt.decode(id_token, options={"verify_signature": False})
        uid = claims.get("user_id") or claims.get("sub")
        if not uid:
            raise jwt.InvalidTokenError("id token carries no user id")
        return cls(
            uid=uid,
            email=claims.get("email"),
            id_token=id_token,
            refresh_token=refresh_token,
            expires_at=float(claims.get("exp", 0)),
        )

    def is_expired(self, buffer_seconds: int = 0) -> bool:
        """True once now is within buffer_seconds of expiry"""
        return time.time() >= (self.expires_at - buffer_seconds)

    @property
    def expires_in(self) -> int:
        return max(0, int(self.expires_at - time.time()))
