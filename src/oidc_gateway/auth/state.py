"""Single-use CSRF state tokens for the authorization code flow."""

import asyncio
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from oidc_gateway.auth.errors import ExpiredState, InvalidState
from oidc_gateway.auth.models import StateEntry, utcnow
from oidc_gateway.auth.sweeper import PeriodicSweeper

logger = logging.getLogger(__name__)

STATE_TOKEN_BYTES = 32


class StateStore:
    """In-memory store of pending state tokens.

    ``validate`` looks up and removes the entry under the store lock, so two
    concurrent callbacks can never redeem the same state. Expired entries are
    detected on lookup; the sweeper only bounds memory.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        sweep_interval_seconds: float = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._entries: dict[str, StateEntry] = {}
        self._lock = asyncio.Lock()
        self.sweeper = PeriodicSweeper("state", sweep_interval_seconds, self.sweep)

    def __len__(self) -> int:
        return len(self._entries)

    async def issue(self, session_id: str) -> str:
        """Create a state token bound to ``session_id``."""
        token = secrets.token_hex(STATE_TOKEN_BYTES)
        entry = StateEntry(token=token, session_id=session_id, expires_at=self.clock() + self.ttl)

        async with self._lock:
            self._entries[token] = entry

        logger.debug(f"Issued state {token[:10]}... for session {session_id}")
        return token

    async def validate(self, token: str) -> str:
        """Redeem a state token and return its session ID."""
        async with self._lock:
            entry = self._entries.pop(token, None)

        if entry is None:
            raise InvalidState()
        if entry.is_expired(self.clock()):
            logger.debug(f"State {token[:10]}... expired at {entry.expires_at.isoformat()}")
            raise ExpiredState()

        logger.debug(f"Validated state {token[:10]}... for session {entry.session_id}")
        return entry.session_id

    async def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self.clock()
        async with self._lock:
            expired = [token for token, entry in self._entries.items() if entry.is_expired(now)]
            for token in expired:
                del self._entries[token]

        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired state parameter(s)")
        return len(expired)
