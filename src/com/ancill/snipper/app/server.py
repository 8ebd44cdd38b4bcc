import asyncio
import contextlib
from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

import aiohttp_jinja2
from aiohttp import web
import jinja2
import redis.asyncio as redis
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from com.ancill.snipper.app.config import (
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    RedisClientAppKey,
    SessionManagerAppKey,
    Settings,
    SettingsAppKey,
    SnippetCleanupTaskAppKey,
    SnippetRepositoryAppKey,
    TickHealthTaskAppKey,
    UserRepositoryAppKey,
)
from com.ancill.snipper.app.metrics import create_metrics_client
from com.ancill.snipper.app.middleware import STANDARD
from com.ancill.snipper.app.routes import build_router, unmatched
from com.ancill.snipper.app.tasks import snippet_cleanup_task, tick_health_task
from com.ancill.snipper.model.health import HealthGauge
from com.ancill.snipper.model.snippets import SnippetRepository
from com.ancill.snipper.model.users import UserRepository
from com.ancill.snipper.session.store import RedisSessionStore, SessionManager

logger = logging.getLogger(__name__)


def human_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%d %b %Y at %H:%M")


def init_services(app: web.Application) -> None:
    """
    Create the repositories and the session manager.

    Expects the settings, database session maker and Redis client to be in
    place already. Called by the startup context in production and directly
    by tests that provide their own resources.
    """
    settings = app[SettingsAppKey]
    database_session_maker = app[DatabaseSessionMakerAppKey]

    app[SnippetRepositoryAppKey] = SnippetRepository(
        database_session_maker, timeout=settings.store_timeout
    )
    app[UserRepositoryAppKey] = UserRepository(
        database_session_maker,
        timeout=settings.store_timeout,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    app[SessionManagerAppKey] = SessionManager(
        RedisSessionStore(app[RedisClientAppKey], timeout=settings.store_timeout),
        lifetime=timedelta(seconds=settings.session_lifetime),
        cookie_name=settings.session_cookie_name,
        cookie_secure=settings.session_cookie_secure,
    )


async def background_tasks(app):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    engine = create_async_engine(str(settings.pg_dsn))
    app[DatabaseAppKey] = engine
    app[DatabaseSessionMakerAppKey] = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    app[RedisClientAppKey] = redis.Redis.from_url(str(settings.redis_dsn))

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    init_services(app)

    logger.info("Startup complete")

    tasks = [TickHealthTaskAppKey]
    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))
    if settings.snippet_cleanup_interval > 0:
        app[SnippetCleanupTaskAppKey] = asyncio.create_task(snippet_cleanup_task(app))
        tasks.append(SnippetCleanupTaskAppKey)

    yield

    logger.info("Shutting down background tasks")

    for task_key in tasks:
        app[task_key].cancel()

    for task_key in tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await app[task_key]

    await app[DatabaseAppKey].dispose()
    await app[RedisClientAppKey].aclose()
    await app[MetricsClientAppKey].close()


def build_app(settings: Settings) -> web.Application:
    """
    Assemble the application: middleware, routes, static files and templates.

    Raises:
        RouteConflictError: If the route table registers a (method, path) twice
    """
    router = build_router()

    app = web.Application(middlewares=[*STANDARD.stages, unmatched])

    app[SettingsAppKey] = settings
    app[HealthGaugeAppKey] = HealthGauge()

    router.install(app)
    app.add_routes([web.static("/static", settings.static_dir, name="static")])

    _ = aiohttp_jinja2.setup(
        app,
        enable_async=True,
        autoescape=True,
        loader=jinja2.FileSystemLoader(settings.templates_dir),
        filters={"human_date": human_date},
    )

    return app


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=False,
            integrations=[AioHttpIntegration()],
        )

    app = build_app(settings)
    app.cleanup_ctx.append(background_tasks)

    return app
