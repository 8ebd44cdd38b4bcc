"""
Tests for the Redis session store, Session token rotation and SessionManager.
"""

from datetime import timedelta
import json

from aiohttp import web
from aiohttp.test_utils import make_mocked_request
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from com.ancill.snipper.errors import StoreError
from com.ancill.snipper.session.store import (
    RedisSessionStore,
    Session,
    SessionManager,
    generate_token,
)
from tests.test_helpers import FrozenClock


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store(fake_redis_client, clock):
    return RedisSessionStore(fake_redis_client, timeout=5.0, clock=clock)


@pytest.fixture
def manager(store, clock):
    return SessionManager(
        store, lifetime=timedelta(hours=12), cookie_secure=False, clock=clock
    )


class TestRedisSessionStore:
    async def test_save_and_load(self, store, clock):
        """Saved data is loaded back with its expiry."""
        expiry = clock() + timedelta(hours=1)
        await store.save("token-a", {"flash": "hello"}, expiry)

        record = await store.load("token-a")
        assert record is not None
        assert record.data == {"flash": "hello"}
        assert record.expiry == expiry

    async def test_load_unknown(self, store):
        """An unknown token loads as None."""
        assert await store.load("missing") is None

    async def test_record_layout(self, store, fake_redis_client, clock):
        """Records live under session:<token> with a TTL matching the expiry."""
        await store.save("token-b", {"k": 1}, clock() + timedelta(minutes=10))

        raw = await fake_redis_client.get("session:token-b")
        assert json.loads(raw)["data"] == {"k": 1}
        ttl = await fake_redis_client.pttl("session:token-b")
        assert 0 < ttl <= 10 * 60 * 1000

    async def test_expired_record_not_loaded(self, store, clock):
        """A record past its expiry is treated as absent even if Redis still has it."""
        await store.save("token-c", {"k": 1}, clock() + timedelta(minutes=5))
        clock.advance(minutes=5)
        assert await store.load("token-c") is None

    async def test_save_in_past_deletes(self, store, fake_redis_client, clock):
        """Saving with an expiry already passed removes the record."""
        await store.save("token-d", {"k": 1}, clock() + timedelta(minutes=5))
        await store.save("token-d", {"k": 2}, clock() - timedelta(seconds=1))
        assert await fake_redis_client.exists("session:token-d") == 0

    async def test_unreadable_record(self, store, fake_redis_client):
        """A corrupt record is discarded."""
        await fake_redis_client.set("session:token-e", b"not json")
        assert await store.load("token-e") is None

    async def test_delete_twice(self, store, clock):
        """Deleting an already deleted token reports False and does not fail."""
        await store.save("token-f", {}, clock() + timedelta(minutes=5))
        assert await store.delete("token-f") is True
        assert await store.delete("token-f") is False

    async def test_redis_failure_is_store_error(self, fake_redis_client, monkeypatch):
        """A lost connection surfaces as a transient StoreError."""

        async def broken_get(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        monkeypatch.setattr(fake_redis_client, "get", broken_get)
        store = RedisSessionStore(fake_redis_client)

        with pytest.raises(StoreError) as exc_info:
            await store.load("token-g")
        assert exc_info.value.transient


class TestSession:
    def test_tokens_are_unique_and_opaque(self):
        """Generated tokens do not repeat and carry 32 bytes of randomness."""
        tokens = {generate_token() for _ in range(100)}
        assert len(tokens) == 100
        assert all(len(t) >= 43 for t in tokens)

    def test_put_marks_modified(self, clock):
        session = Session("t", {}, clock())
        session.put("a", 1)
        assert session.modified
        assert session.get("a") == 1

    def test_pop_is_one_shot(self, clock):
        """pop returns the value once and then the default."""
        session = Session("t", {"flash": "hi"}, clock())
        assert session.pop("flash") == "hi"
        assert session.pop("flash") is None
        assert session.modified

    def test_pop_missing_does_not_modify(self, clock):
        session = Session("t", {}, clock())
        assert session.pop("flash", "none") == "none"
        assert not session.modified

    def test_renew_token_keeps_data(self, clock):
        """Renewing moves the data to a new token and schedules the old one for deletion."""
        session = Session("old", {"csrf_token": "x"}, clock())
        session.renew_token()

        assert session.token != "old"
        assert session.stale_tokens == ["old"]
        assert session.data == {"csrf_token": "x"}
        assert session.modified

    def test_renew_new_session_has_nothing_stale(self, clock):
        session = Session("fresh", {}, clock(), is_new=True)
        session.renew_token()
        assert session.stale_tokens == []

    def test_destroy(self, clock):
        """Destroy clears the data and retires the token."""
        session = Session("old", {"authenticated_user_id": 1}, clock())
        session.destroy()

        assert session.token != "old"
        assert session.stale_tokens == ["old"]
        assert session.data == {}
        assert session.destroyed
        assert not session.modified


class TestSessionManager:
    async def test_load_without_cookie(self, manager, clock):
        """A request without a cookie gets a new, empty session."""
        session = await manager.load(make_mocked_request("GET", "/"))
        assert session.is_new
        assert session.data == {}
        assert session.expiry == clock() + timedelta(hours=12)

    async def test_load_with_unknown_cookie(self, manager):
        """An unknown token is replaced with a new session, never adopted."""
        request = make_mocked_request("GET", "/", headers={"Cookie": "session=forged"})
        session = await manager.load(request)
        assert session.is_new
        assert session.token != "forged"

    async def test_commit_unmodified_writes_nothing(self, manager, fake_redis_client):
        """An untouched session is not saved and no cookie is set."""
        session = manager.new_session()
        response = web.Response()
        await manager.commit(session, response)

        assert await fake_redis_client.keys("session:*") == []
        assert "session" not in response.cookies

    async def test_commit_modified_sets_cookie(self, manager, store):
        """A modified session is saved and the cookie carries its token."""
        session = manager.new_session()
        session.put("flash", "hello")
        response = web.Response()
        await manager.commit(session, response)

        cookie = response.cookies["session"]
        assert cookie.value == session.token
        assert cookie["httponly"]
        assert cookie["samesite"] == "Lax"
        assert cookie["path"] == "/"
        assert (await store.load(session.token)).data == {"flash": "hello"}

    async def test_commit_round_trip_through_cookie(self, manager):
        """A committed session is found again from the cookie."""
        session = manager.new_session()
        session.put("k", "v")
        await manager.commit(session, web.Response())

        request = make_mocked_request(
            "GET", "/", headers={"Cookie": f"session={session.token}"}
        )
        loaded = await manager.load(request)
        assert not loaded.is_new
        assert loaded.token == session.token
        assert loaded.get("k") == "v"

    async def test_commit_after_renew_deletes_old_record(self, manager, store):
        """After rotation the old token no longer loads."""
        session = manager.new_session()
        session.put("k", "v")
        await manager.commit(session, web.Response())
        old_token = session.token

        session.renew_token()
        await manager.commit(session, web.Response())

        assert await store.load(old_token) is None
        assert (await store.load(session.token)).data == {"k": "v"}

    async def test_commit_after_destroy_expires_cookie(self, manager, store):
        """A destroyed session is removed and the cookie cleared."""
        session = manager.new_session()
        session.put("authenticated_user_id", 1)
        await manager.commit(session, web.Response())
        old_token = session.token

        session.destroy()
        response = web.Response()
        await manager.commit(session, response)

        assert await store.load(old_token) is None
        assert response.cookies["session"].value == ""
        assert response.cookies["session"]["max-age"] == "0"
