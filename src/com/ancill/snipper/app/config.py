"""
Configuration Module for the Snipper Service

This module defines the configuration system for the Snipper service, using Pydantic for settings
validation and dependency injection through AppKeys.

The configuration follows these principles:
1. Environment-based configuration with sensible defaults
2. Strong validation and typing through Pydantic
3. Dependency injection pattern using aiohttp's app context
4. Shared resources are created once at startup and never replaced while serving

Key configuration areas include:
- Networking and TLS
- Database and session store connections
- Session and cookie policy
- Store timeouts and background cleanup
- Monitoring and observability
"""

import asyncio
import os
from typing import Final, Optional

from aiohttp import web
from pydantic import AliasChoices, Field, PostgresDsn, RedisDsn, field_validator
from pydantic_settings import BaseSettings
from redis import asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from com.ancill.snipper.app.metrics import MetricsClient
from com.ancill.snipper.model.health import HealthGauge
from com.ancill.snipper.model.snippets import SnippetRepository
from com.ancill.snipper.model.users import UserRepository
from com.ancill.snipper.session.store import SessionManager

UI_ROOT = os.path.join(os.path.dirname(os.path.dirname(__file__)), "ui")


class Settings(BaseSettings):
    """
    Application settings for the Snipper service.

    This class uses Pydantic's BaseSettings to automatically load values from environment
    variables, with defaults suitable for development environments.

    Environment variables are automatically mapped to settings fields, with aliases
    provided where the deployment platform uses a different name. For example, the database
    connection string can be set with either PG_DSN or DATABASE_URL.
    """

    # Environment and debugging settings
    debug: bool = False
    """
    Enable debug mode for verbose logging.
    Set with DEBUG=true environment variable.
    """

    # Network settings
    http_host: str = "0.0.0.0"
    """
    Interface for the HTTP server to bind to.
    Set with HTTP_HOST environment variable.
    """

    http_port: int = Field(alias="port", default=4000)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    tls_cert_file: Optional[str] = None
    """
    Path to a PEM certificate chain. TLS is enabled when both this and tls_key_file are set.
    Set with TLS_CERT_FILE environment variable.
    """

    tls_key_file: Optional[str] = None
    """
    Path to the PEM private key matching tls_cert_file.
    Set with TLS_KEY_FILE environment variable.
    """

    # Monitoring and error reporting
    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    # Database and session store connections
    redis_dsn: RedisDsn = Field(
        "redis://valkey:6379/1",
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )  # type: ignore
    """
    Redis connection string for the session store.
    Set with REDIS_DSN or REDIS_URL environment variables.
    Default: redis://valkey:6379/1
    """

    pg_dsn: PostgresDsn = Field(
        "postgresql+asyncpg://postgres:password@db/snipper",
        validation_alias=AliasChoices("pg_dsn", "database_url"),
    )  # type: ignore
    """
    PostgreSQL connection string for database access.
    Set with PG_DSN or DATABASE_URL environment variables.
    Default: postgresql+asyncpg://postgres:password@db/snipper
    """

    store_timeout: float = 5.0
    """
    Upper bound in seconds for a single database or session store call. A call that runs longer
    fails and the request is answered with 503 Service Unavailable.
    Set with STORE_TIMEOUT environment variable.
    """

    # Session and cookie settings
    session_lifetime: int = 43200  # 12 hours
    """
    Absolute lifetime in seconds of a session.
    Set with SESSION_LIFETIME environment variable.
    Default: 43200 (12 hours)
    """

    session_cookie_name: str = "session"
    """
    Name of the cookie carrying the session token.
    Set with SESSION_COOKIE_NAME environment variable.
    """

    session_cookie_secure: bool = True
    """
    Mark the session cookie Secure. Only disable for local development over plain HTTP.
    Set with SESSION_COOKIE_SECURE environment variable.
    """

    bcrypt_rounds: int = 12
    """
    bcrypt cost factor for new password hashes.
    Set with BCRYPT_ROUNDS environment variable.
    """

    # Snippet settings
    latest_snippets_limit: int = 10
    """
    Number of snippets listed on the home page.
    Set with LATEST_SNIPPETS_LIMIT environment variable.
    """

    snippet_cleanup_interval: int = 3600
    """
    Seconds between runs of the task that deletes expired snippets. Zero disables the task;
    expired snippets stay invisible either way.
    Set with SNIPPET_CLEANUP_INTERVAL environment variable.
    Default: 3600 (1 hour)
    """

    # Monitoring and observability settings
    metrics_backend: str = "telegraf"
    """
    Metrics backend, either "telegraf" or "none".
    Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    # UI settings
    templates_dir: str = os.path.join(UI_ROOT, "templates")
    """Directory containing the Jinja2 page templates"""

    static_dir: str = os.path.join(UI_ROOT, "static")
    """Directory served verbatim under /static"""

    @field_validator("metrics_backend")
    @classmethod
    def validate_metrics_backend(cls, v: str) -> str:
        backend = v.lower()
        if backend not in ("telegraf", "none"):
            raise ValueError("metrics_backend must be 'telegraf' or 'none'")
        return backend


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

DatabaseAppKey: Final = web.AppKey("database", AsyncEngine)
"""AppKey for accessing the SQLAlchemy async database engine"""

DatabaseSessionMakerAppKey: Final = web.AppKey(
    "database_session_maker", async_sessionmaker[AsyncSession]
)
"""AppKey for accessing the SQLAlchemy async session factory"""

RedisClientAppKey: Final = web.AppKey("redis_client", redis.Redis)
"""AppKey for accessing the Redis client backing the session store"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for accessing the metrics client"""

SessionManagerAppKey: Final = web.AppKey("session_manager", SessionManager)
"""AppKey for accessing the session manager"""

SnippetRepositoryAppKey: Final = web.AppKey("snippet_repository", SnippetRepository)
"""AppKey for accessing the snippet repository"""

UserRepositoryAppKey: Final = web.AppKey("user_repository", UserRepository)
"""AppKey for accessing the user repository and credential verifier"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that decays the health gauge"""

SnippetCleanupTaskAppKey: Final = web.AppKey(
    "snippet_cleanup_task", asyncio.Task[None]
)
"""AppKey for the background task that deletes expired snippets"""
