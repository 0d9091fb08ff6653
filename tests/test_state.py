import asyncio
import re

import pytest

from oidc_gateway.auth.errors import ExpiredState, InvalidState
from oidc_gateway.auth.state import StateStore


@pytest.fixture
def store(clock) -> StateStore:
    return StateStore(ttl_seconds=600, clock=clock)


class TestStateIssue:
    """Tests for issuing state tokens."""

    async def test_issue_returns_64_hex_chars(self, store: StateStore):
        """State tokens are 32 random bytes, hex encoded."""
        token = await store.issue("sess_1")
        assert re.fullmatch(r"[0-9a-f]{64}", token)
        assert len(store) == 1

    async def test_issue_is_unique(self, store: StateStore):
        """Each call returns a fresh token."""
        tokens = {await store.issue("sess_1") for _ in range(20)}
        assert len(tokens) == 20


class TestStateValidate:
    """Tests for redeeming state tokens."""

    async def test_validate_returns_session_id(self, store: StateStore):
        token = await store.issue("sess_abc")
        assert await store.validate(token) == "sess_abc"

    async def test_validate_is_single_use(self, store: StateStore):
        """A second redemption of the same token fails."""
        token = await store.issue("sess_abc")
        await store.validate(token)

        with pytest.raises(InvalidState):
            await store.validate(token)

    async def test_unknown_token(self, store: StateStore):
        with pytest.raises(InvalidState) as exc_info:
            await store.validate("deadbeef")
        assert exc_info.value.kind == "invalid_state"

    async def test_expired_token_is_removed(self, store: StateStore, clock):
        """An expired token fails once as expired, then is simply unknown."""
        token = await store.issue("sess_abc")
        clock.advance(601)

        with pytest.raises(ExpiredState):
            await store.validate(token)
        with pytest.raises(InvalidState):
            await store.validate(token)
        assert len(store) == 0

    async def test_token_valid_at_exact_expiry(self, store: StateStore, clock):
        """Expiry is strict: the entry is still valid at expires_at."""
        token = await store.issue("sess_abc")
        clock.advance(600)
        assert await store.validate(token) == "sess_abc"

    async def test_concurrent_redemption_succeeds_once(self, store: StateStore):
        token = await store.issue("sess_abc")

        results = await asyncio.gather(
            *(store.validate(token) for _ in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if r == "sess_abc"]
        failures = [r for r in results if isinstance(r, InvalidState)]
        assert len(successes) == 1
        assert len(failures) == 9


class TestStateSweep:
    """Tests for background cleanup."""

    async def test_sweep_removes_only_expired(self, store: StateStore, clock):
        old = await store.issue("sess_old")
        clock.advance(400)
        fresh = await store.issue("sess_new")
        clock.advance(300)

        removed = await store.sweep()

        assert removed == 1
        assert len(store) == 1
        assert await store.validate(fresh) == "sess_new"
        with pytest.raises(InvalidState):
            await store.validate(old)

    async def test_sweeper_runs_periodically(self, clock):
        store = StateStore(ttl_seconds=1, sweep_interval_seconds=0.01, clock=clock)
        await store.issue("sess_abc")
        clock.advance(5)

        store.sweeper.start()
        assert store.sweeper.running
        for _ in range(100):
            if len(store) == 0:
                break
            await asyncio.sleep(0.01)
        await store.sweeper.stop()

        assert len(store) == 0
        assert not store.sweeper.running
