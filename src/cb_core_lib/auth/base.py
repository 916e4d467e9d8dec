"""
Auth collaborator interface.

Implementations provide sign-in, sign-up, sign-out and token refresh against
their backend; this base class owns the current session, notifies session
listeners on every change, and hands out fresh id tokens to the store client.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from cb_core_lib.auth.session import AuthSession
from cb_core_lib.store.base import Subscription

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[AuthSession]], None]


class _SessionSubscription(Subscription):
    def __init__(self, provider: "AuthProvider", listener: SessionListener):
        self._provider = provider
        self.listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._provider._listeners.remove(self)


class AuthProvider(ABC):
    """Abstract base class for auth collaborators"""

    def __init__(self, refresh_buffer_seconds: int = 300):
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self._session: Optional[AuthSession] = None
        self._listeners: List[_SessionSubscription] = []
        self._lock = asyncio.Lock()

    @property
    def current_session(self) -> Optional[AuthSession]:
        return self._session

    # ------------------------------------------------------------------
    # Backend operations
    # ------------------------------------------------------------------
    @abstractmethod
    async def _sign_in(self, email: str, password: str) -> AuthSession:
        """Exchange credentials for a session. Raises AuthError."""
        pass

    @abstractmethod
    async def _sign_up(self, email: str, password: str) -> AuthSession:
        """Create an account and return its session. Raises AuthError."""
        pass

    @abstractmethod
    async def _refresh(self, session: AuthSession) -> AuthSession:
        """Return a session with a new id token."""
        pass

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def sign_in(self, email: str, password: str) -> AuthSession:
        session = await self._sign_in(email.strip(), password)
        self._set_session(session)
        logger.info(f"Signed in {session.uid}")
        return session

    async def sign_up(self, email: str, password: str) -> AuthSession:
        session = await self._sign_up(email.strip(), password)
        self._set_session(session)
        logger.info(f"Signed up {session.uid}")
        return session

    async def sign_out(self) -> None:
        if self._session is not None:
            logger.info(f"Signing out {self._session.uid}")
        self._set_session(None)

    def subscribe(self, listener: SessionListener) -> Subscription:
        """Call listener with the current session now and on every change."""
        subscription = _SessionSubscription(self, listener)
        self._listeners.append(subscription)
        listener(self._session)
        return subscription

    async def get_token(self) -> Optional[str]:
        """Current id token, refreshed first if it is about to expire.

        Returns:
            The id token, or None when signed out
        """
        session = self._session
        if session is None:
            return None

        if session.is_expired(self.refresh_buffer_seconds):
            async with self._lock:
                # Double-check after acquiring lock (another task may have refreshed)
                session = self._session
                if session is not None and session.is_expired(self.refresh_buffer_seconds):
                    logger.info(f"Refreshing id token for {session.uid}")
                    session = await self._refresh(session)
                    self._set_session(session)

        return session.id_token if session is not None else None

    def _set_session(self, session: Optional[AuthSession]) -> None:
        self._session = session
        for subscription in list(self._listeners):
            subscription.listener(session)
