"""
Shared test configuration and fixtures for Snipper tests.

Provides a throwaway SQLite database per test, a fake Redis client for the
session store, and a fully wired application with a test client.
"""

import fakeredis.aioredis
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from com.ancill.snipper.app.config import (
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    MetricsClientAppKey,
    RedisClientAppKey,
    Settings,
)
from com.ancill.snipper.app.metrics import NoOpMetricsClient
from com.ancill.snipper.app.server import build_app, init_services
from com.ancill.snipper.model.base import Base
from com.ancill.snipper.model.snippets import SnippetRepository
from com.ancill.snipper.model.users import UserRepository
from com.ancill.snipper.session.store import RedisSessionStore


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create an async SQLAlchemy engine on a fresh SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'snipper.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def database_session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def snippet_repository(database_session_maker):
    return SnippetRepository(database_session_maker, timeout=5.0)


@pytest.fixture
def user_repository(database_session_maker):
    return UserRepository(database_session_maker, timeout=5.0, bcrypt_rounds=4)


@pytest.fixture
def session_store(fake_redis_client):
    return RedisSessionStore(fake_redis_client, timeout=5.0)


@pytest.fixture
def settings():
    return Settings(
        metrics_backend="none",
        session_cookie_secure=False,
        bcrypt_rounds=4,
        snippet_cleanup_interval=0,
    )  # type: ignore


@pytest.fixture
def app(settings, engine, database_session_maker, fake_redis_client):
    """The application with test resources in place of the startup context."""
    app = build_app(settings)
    app[DatabaseAppKey] = engine
    app[DatabaseSessionMakerAppKey] = database_session_maker
    app[RedisClientAppKey] = fake_redis_client
    app[MetricsClientAppKey] = NoOpMetricsClient()
    init_services(app)
    return app


@pytest_asyncio.fixture
async def client(app):
    """HTTP client against the application. Keeps cookies between requests."""
    client = TestClient(TestServer(app))
    await client.start_server()
    yield client
    await client.close()
