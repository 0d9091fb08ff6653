import pytest

from oidc_gateway.auth.errors import SessionNotFound
from oidc_gateway.auth.session import InMemorySessionStore


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(ttl_seconds=3600, clock=clock)


class TestSessionCreate:
    """Tests for creating and reading sessions."""

    async def test_create_and_get(self, store: InMemorySessionStore, clock):
        session = await store.create(ip_address="10.0.0.1", user_agent="pytest", redirect_uri="https://app/cb")

        assert session.session_id.startswith("sess_")
        assert len(session.session_id) == len("sess_") + 64
        assert session.user_id == ""
        assert not session.is_bound
        assert session.created_at == clock()
        assert (session.expires_at - session.created_at).total_seconds() == 3600

        loaded = await store.get(session.session_id)
        assert loaded == session

    async def test_get_returns_copy(self, store: InMemorySessionStore):
        """Mutating a returned session does not change the stored one."""
        session = await store.create()
        session.user_id = "intruder"

        loaded = await store.get(session.session_id)
        assert loaded.user_id == ""

    async def test_get_unknown(self, store: InMemorySessionStore):
        assert await store.get("sess_missing") is None

    async def test_get_drops_expired_session(self, store: InMemorySessionStore, clock):
        session = await store.create()
        clock.advance(3601)

        assert await store.get(session.session_id) is None
        assert len(store) == 0

    async def test_reads_do_not_extend_expiry(self, store: InMemorySessionStore, clock):
        session = await store.create()
        clock.advance(3000)
        await store.get(session.session_id)
        clock.advance(601)

        assert await store.get(session.session_id) is None


class TestSessionBinding:
    """Tests for attaching users to sessions."""

    async def test_bind_user(self, store: InMemorySessionStore):
        session = await store.create()
        await store.bind_user(session.session_id, "usr_1")

        loaded = await store.get(session.session_id)
        assert loaded.user_id == "usr_1"
        assert loaded.is_bound

    async def test_bind_missing_session(self, store: InMemorySessionStore):
        with pytest.raises(SessionNotFound):
            await store.bind_user("sess_missing", "usr_1")

    async def test_bind_expired_session(self, store: InMemorySessionStore, clock):
        session = await store.create()
        clock.advance(3601)

        with pytest.raises(SessionNotFound):
            await store.bind_user(session.session_id, "usr_1")

    async def test_bound_session_is_not_rebound(self, store: InMemorySessionStore):
        session = await store.create(user_id="usr_1")
        await store.bind_user(session.session_id, "usr_2")

        loaded = await store.get(session.session_id)
        assert loaded.user_id == "usr_1"


class TestSessionQueries:
    """Tests for listing, deleting and sweeping sessions."""

    async def test_list_by_user(self, store: InMemorySessionStore, clock):
        first = await store.create(user_id="usr_1")
        clock.advance(1800)
        second = await store.create(user_id="usr_1")
        await store.create(user_id="usr_2")
        clock.advance(1801)

        sessions = await store.list_by_user("usr_1")
        assert [s.session_id for s in sessions] == [second.session_id]
        assert first.session_id not in {s.session_id for s in sessions}

    async def test_delete(self, store: InMemorySessionStore):
        session = await store.create()
        await store.delete(session.session_id)
        await store.delete(session.session_id)

        assert await store.get(session.session_id) is None

    async def test_sweep(self, store: InMemorySessionStore, clock):
        await store.create()
        await store.create()
        clock.advance(1800)
        kept = await store.create()
        clock.advance(1801)

        assert await store.sweep() == 2
        assert len(store) == 1
        assert await store.get(kept.session_id) is not None

    async def test_sweeper_start_stop(self, store: InMemorySessionStore):
        store.sweeper.start()
        store.sweeper.start()
        assert store.sweeper.running

        await store.sweeper.stop()
        assert not store.sweeper.running
        await store.sweeper.stop()
