"""
Server-side Sessions

This module implements the session lifecycle for the Snipper service. Session data lives in Redis
under an opaque token; the client only ever holds the token in an HttpOnly cookie.

Components:
- RedisSessionStore: token-keyed persistence with TTL-based expiry
- Session: the per-request view of one session's data, tracking mutations and token rotation
- SessionManager: cookie policy, loading a session for a request and committing it afterwards

Token rotation:
    A privilege change (login, logout) must not keep using a token the client held while it had
    different privileges. Session.renew_token and Session.destroy schedule the old token for
    deletion and switch to a freshly generated one; SessionManager.commit deletes the old record
    before saving under the new token.

Concurrency:
    Concurrent requests carrying the same token each load their own copy of the data and the last
    one to commit wins. There is no optimistic concurrency control; a flash message or CSRF token
    written by one request may be overwritten by a concurrent request in the same session.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import json
import logging
import secrets
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from aiohttp import web
from redis import asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from com.ancill.snipper.errors import StoreError
from com.ancill.snipper.model.base import utc_now

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


@dataclass
class SessionRecord:
    """Session data as persisted, with its absolute expiry."""

    data: Dict[str, Any]
    expiry: datetime


@asynccontextmanager
async def _redis_operation(name: str, timeout: float) -> AsyncIterator[None]:
    try:
        async with asyncio.timeout(timeout):
            yield
    except TimeoutError as e:
        raise StoreError(f"{name} timed out after {timeout}s", transient=True) from e
    except RedisError as e:
        transient = isinstance(e, (RedisConnectionError, RedisTimeoutError))
        raise StoreError(f"{name} failed: {type(e).__name__}", transient=transient) from e


class RedisSessionStore:
    """
    Persists session data keyed by token, with TTL-based expiry.

    Reads of an unknown, expired or unreadable token all return None. Every
    call is bounded by ``timeout`` seconds.

    Args:
        redis_client: Async Redis client
        prefix: Key prefix, records are stored at ``{prefix}:{token}``
        timeout: Upper bound in seconds for each Redis command
        clock: Returns the current UTC time, replaceable in tests
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        prefix: str = "session",
        timeout: float = 5.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.redis_client = redis_client
        self.prefix = prefix
        self.timeout = timeout
        self.clock = clock

    def key(self, token: str) -> str:
        return f"{self.prefix}:{token}"

    async def load(self, token: str) -> Optional[SessionRecord]:
        async with _redis_operation("session.load", self.timeout):
            raw = await self.redis_client.get(self.key(token))
        if raw is None:
            return None

        try:
            payload = json.loads(raw)
            record = SessionRecord(
                data=dict(payload["data"]),
                expiry=datetime.fromtimestamp(float(payload["expiry"]), timezone.utc),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("discarding unreadable session record")
            return None

        if record.expiry <= self.clock():
            return None
        return record

    async def save(self, token: str, data: Dict[str, Any], expiry: datetime) -> None:
        ttl_ms = int((expiry - self.clock()).total_seconds() * 1000)
        if ttl_ms <= 0:
            await self.delete(token)
            return

        payload = json.dumps({"data": data, "expiry": expiry.timestamp()})
        async with _redis_operation("session.save", self.timeout):
            await self.redis_client.set(self.key(token), payload, px=ttl_ms)

    async def delete(self, token: str) -> bool:
        """Remove a session record. Returns False if there was nothing to remove."""
        async with _redis_operation("session.delete", self.timeout):
            removed = await self.redis_client.delete(self.key(token))
        return removed > 0


class Session:
    """
    The session attached to one request.

    Mutations only mark the session as modified; nothing is written until
    SessionManager.commit runs after the handler.
    """

    def __init__(
        self,
        token: str,
        data: Dict[str, Any],
        expiry: datetime,
        is_new: bool = False,
    ) -> None:
        self.token = token
        self.data = data
        self.expiry = expiry
        self.is_new = is_new
        self.modified = False
        self.destroyed = False
        self.stale_tokens: List[str] = []

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.modified = True

    def pop(self, key: str, default: Any = None) -> Any:
        """Read a value and remove it, for one-shot values such as flash messages."""
        if key not in self.data:
            return default
        self.modified = True
        return self.data.pop(key)

    def remove(self, key: str) -> None:
        if key in self.data:
            del self.data[key]
            self.modified = True

    def renew_token(self) -> None:
        """Keep the data but move it to a new token. Call on every privilege change."""
        if not self.is_new:
            self.stale_tokens.append(self.token)
        self.token = generate_token()
        self.is_new = True
        self.modified = True

    def destroy(self) -> None:
        """Drop all data and the token. Later writes start a fresh anonymous session."""
        if not self.is_new:
            self.stale_tokens.append(self.token)
        self.token = generate_token()
        self.is_new = True
        self.data = {}
        self.modified = False
        self.destroyed = True


class SessionManager:
    """
    Loads sessions from the request cookie and commits them to the store.

    Args:
        store: Backing session store
        lifetime: Absolute lifetime of a new session
        cookie_name: Name of the session cookie
        cookie_secure: Whether to mark the cookie Secure (disable only for plain HTTP development)
        clock: Returns the current UTC time, replaceable in tests
    """

    def __init__(
        self,
        store: RedisSessionStore,
        lifetime: timedelta = timedelta(hours=12),
        cookie_name: str = "session",
        cookie_secure: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.lifetime = lifetime
        self.cookie_name = cookie_name
        self.cookie_secure = cookie_secure
        self.clock = clock

    def new_session(self) -> Session:
        return Session(
            generate_token(), {}, self.clock() + self.lifetime, is_new=True
        )

    async def load(self, request: web.Request) -> Session:
        token = request.cookies.get(self.cookie_name)
        if token:
            record = await self.store.load(token)
            if record is not None:
                return Session(token, record.data, record.expiry)
        return self.new_session()

    async def commit(
        self, session: Session, response: Optional[web.StreamResponse]
    ) -> None:
        """
        Persist the outcome of a request.

        Stale tokens from rotation are deleted first. A modified session is
        saved under its current token and the cookie refreshed; a destroyed
        and untouched session only has its cookie expired.
        """
        for stale_token in session.stale_tokens:
            await self.store.delete(stale_token)
        session.stale_tokens.clear()

        can_set_cookie = response is not None and not response.prepared

        if session.modified:
            await self.store.save(session.token, session.data, session.expiry)
            session.is_new = False
            session.modified = False
            if can_set_cookie:
                max_age = max(int((session.expiry - self.clock()).total_seconds()), 0)
                response.set_cookie(
                    self.cookie_name,
                    session.token,
                    max_age=max_age,
                    path="/",
                    secure=self.cookie_secure,
                    httponly=True,
                    samesite="Lax",
                )
        elif session.destroyed and can_set_cookie:
            response.del_cookie(self.cookie_name, path="/")
