"""In-process auth provider for local development and tests."""

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Dict, Optional
from uuid import uuid4

import jwt

from cb_core_lib.auth.base import AuthProvider
from cb_core_lib.auth.session import AuthSession
from cb_core_lib.exceptions import AuthError, AuthErrorCode

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass
class _Account:
    uid: str
    email: str
    salt: bytes
    password_hash: bytes


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)


class InMemoryAuthProvider(AuthProvider):
    """Accounts kept in memory; issues HS256 id tokens signed with a per-instance key.

    Mirrors the hosted identity service's error classes: unknown email and
    wrong password both report invalid-credential, an existing email reports
    email-already-in-use, and passwords under six characters report
    weak-password.
    """

    def __init__(self, token_ttl_seconds: int = 3600, refresh_buffer_seconds: int = 300):
        super().__init__(refresh_buffer_seconds=refresh_buffer_seconds)
        self.token_ttl_seconds = token_ttl_seconds
        self._accounts: Dict[str, _Account] = {}
        self._signing_key = secrets.token_hex(32)
        self.refresh_count = 0

    def _issue(self, account: _Account, refresh_token: Optional[str] = None) -> AuthSession:
        now = int(time.time())
        token = jwt.encode(
            {
                "sub": account.uid,
                "user_id": account.uid,
                "email": account.email,
                "iat": now,
                "exp": now + self.token_ttl_seconds,
            },
            self._signing_key,
            algorithm="HS256",
        )
        return AuthSession.from_id_token(token, refresh_token or secrets.token_urlsafe(24))

    def _key(self, email: str) -> str:
        return email.strip().lower()

    async def _sign_in(self, email: str, password: str) -> AuthSession:
        account = self._accounts.get(self._key(email))
        if account is None or not secrets.compare_digest(
            account.password_hash, _hash_password(password, account.salt)
        ):
            raise AuthError(AuthErrorCode.INVALID_CREDENTIAL)
        return self._issue(account)

    async def _sign_up(self, email: str, password: str) -> AuthSession:
        key = self._key(email)
        if key in self._accounts:
            raise AuthError(AuthErrorCode.EMAIL_ALREADY_IN_USE)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(AuthErrorCode.WEAK_PASSWORD)

        salt = secrets.token_bytes(16)
        account = _Account(
            uid=uuid4().hex[:28],
            email=email,
            salt=salt,
            password_hash=_hash_password(password, salt),
        )
        self._accounts[key] = account
        logger.debug(f"Created account {account.uid}")
        return self._issue(account)

    async def _refresh(self, session: AuthSession) -> AuthSession:
        account = self._accounts.get(self._key(session.email or ""))
        if account is None or account.uid != session.uid:
            raise AuthError(AuthErrorCode.INVALID_CREDENTIAL, "Session no longer valid")
        self.refresh_count += 1
        return self._issue(account, session.refresh_token)

    def verify(self, id_token: str) -> dict:
        """Verify a token issued by this provider and return its claims."""
        return jwt.decode(id_token, self._signing_key, algorithms=["HS256"])
