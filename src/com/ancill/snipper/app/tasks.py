import asyncio
import logging
from typing import NoReturn

from aiohttp import web
import sentry_sdk

from com.ancill.snipper.app.config import (
    HealthGaugeAppKey,
    MetricsClientAppKey,
    SettingsAppKey,
    SnippetRepositoryAppKey,
)

logger = logging.getLogger(__name__)


async def tick_health_task(app: web.Application) -> NoReturn:
    """
    Decay the health gauge every 30 seconds and publish the remaining failure count.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    metrics_client = app[MetricsClientAppKey]
    while True:
        failures = await health_gauge.decay()
        metrics_client.gauge("snipper.health.failures", failures)
        await asyncio.sleep(30)


async def run_snippet_cleanup(app: web.Application) -> int:
    """Delete expired snippets once and report how many were removed."""
    snippet_repository = app[SnippetRepositoryAppKey]
    metrics_client = app[MetricsClientAppKey]

    removed = await snippet_repository.delete_expired()
    if removed > 0:
        logger.info("Cleaned up %d expired snippets", removed)
    metrics_client.increment("snipper.task.snippet_cleanup.removed", removed)
    return removed


async def snippet_cleanup_task(app: web.Application) -> NoReturn:
    """
    Background task that physically removes expired snippets.

    Reads already hide expired snippets, so this only keeps the table small.
    A failed run is reported and retried on the next interval.
    """
    logger.info("Starting snippet cleanup task")

    settings = app[SettingsAppKey]

    while True:
        try:
            await asyncio.sleep(settings.snippet_cleanup_interval)
            await run_snippet_cleanup(app)
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.exception("snippet cleanup task failed")
