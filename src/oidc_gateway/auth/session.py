"""Session tracking for in-flight and completed logins."""

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta

from oidc_gateway.auth.errors import SessionNotFound
from oidc_gateway.auth.models import SessionData, utcnow
from oidc_gateway.auth.sweeper import PeriodicSweeper

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Abstract base class for session storage."""

    @abstractmethod
    async def create(
        self,
        user_id: str = "",
        ip_address: str = "",
        user_agent: str = "",
        redirect_uri: str | None = None,
    ) -> SessionData:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> SessionData | None:
        pass

    @abstractmethod
    async def bind_user(self, session_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> list[SessionData]:
        pass

    @abstractmethod
    async def sweep(self) -> int:
        pass


class InMemorySessionStore(SessionStore):
    """In-memory session store.

    Expiry is fixed at creation; reads never extend it. Expired sessions are
    dropped lazily on ``get`` and in bulk by the sweeper.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        sweep_interval_seconds: float = 600,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._sessions: dict[str, SessionData] = {}
        self._lock = asyncio.Lock()
        self.sweeper = PeriodicSweeper("session", sweep_interval_seconds, self.sweep)

    def __len__(self) -> int:
        return len(self._sessions)

    def generate_session_id(self) -> str:
        """Generate a secure random session ID."""
        return "sess_" + secrets.token_hex(32)

    async def create(
        self,
        user_id: str = "",
        ip_address: str = "",
        user_agent: str = "",
        redirect_uri: str | None = None,
    ) -> SessionData:
        now = self.clock()
        session = SessionData(
            session_id=self.generate_session_id(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl,
            ip_address=ip_address,
            user_agent=user_agent,
            redirect_uri=redirect_uri,
        )

        async with self._lock:
            self._sessions[session.session_id] = session

        logger.info(f"Created session {session.session_id} (user={user_id or '-'}, ip={ip_address or '-'})")
        return session.model_copy()

    async def get(self, session_id: str) -> SessionData | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.is_expired(self.clock()):
                del self._sessions[session_id]
                logger.debug(f"Session {session_id} expired")
                return None
            return session.model_copy()

    async def bind_user(self, session_id: str, user_id: str) -> None:
        """Attach the authenticated user to a pending session.

        Raises SessionNotFound when the session is gone; callers treat that as
        a soft failure.
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.is_expired(self.clock()):
                raise SessionNotFound()
            if session.user_id and session.user_id != user_id:
                logger.warning(f"Session {session_id} already bound to {session.user_id}; not rebinding")
                return
            session.user_id = user_id

        logger.info(f"Session {session_id} bound to user {user_id}")

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is not None:
            logger.info(f"Deleted session {session_id} (user={session.user_id or '-'})")

    async def list_by_user(self, user_id: str) -> list[SessionData]:
        now = self.clock()
        async with self._lock:
            return [
                session.model_copy()
                for session in self._sessions.values()
                if session.user_id == user_id and not session.is_expired(now)
            ]

    async def sweep(self) -> int:
        now = self.clock()
        async with self._lock:
            expired = [sid for sid, session in self._sessions.items() if session.is_expired(now)]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired session(s)")
        return len(expired)
