import asyncio
from datetime import datetime, timezone
import logging
from time import time
from typing import Any, NoReturn, Optional

from aiohttp import web
import sentry_sdk

from prepdeck.auth.app.config import (
    SESSION_CLEANUP_LOCK,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    RedisClientAppKey,
    RefreshSessionStoreAppKey,
    SettingsAppKey,
)
from prepdeck.auth.app.metrics import MetricsClient
from prepdeck.auth.store.sessions import RefreshSessionStore

logger = logging.getLogger(__name__)


class CleanupLock:
    """
    Redis lock that elects one worker per cleanup interval.

    The lock is never released explicitly; it expires with the interval so that a worker that dies
    mid-purge cannot block the others for longer than one interval.
    """

    def __init__(self, redis_client: Any, worker_id: str, ttl: int) -> None:
        self.redis_client = redis_client
        self.worker_id = worker_id
        self.ttl = ttl

    async def acquire(self) -> bool:
        acquired = await self.redis_client.set(
            SESSION_CLEANUP_LOCK, self.worker_id, nx=True, ex=self.ttl
        )
        return bool(acquired)


async def run_session_cleanup(
    session_store: RefreshSessionStore,
    cleanup_lock: CleanupLock,
    metrics_client: MetricsClient,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """
    Purge expired refresh sessions if this worker owns the current interval.

    Returns the number of purged sessions, or None when another worker holds the lock.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    if not await cleanup_lock.acquire():
        logger.debug("session cleanup skipped, another worker holds the lock")
        return None

    start_time = time()
    try:
        purged = await session_store.purge_expired(now)
    finally:
        metrics_client.timer(
            "prepdeck.task.session_cleanup.time",
            time() - start_time,
            tag_dict={"worker_id": cleanup_lock.worker_id},
        )

    metrics_client.increment(
        "prepdeck.task.session_cleanup.expired_sessions_removed",
        purged,
        tag_dict={"worker_id": cleanup_lock.worker_id},
    )
    return purged


async def session_cleanup_task(app: web.Application) -> NoReturn:
    """
    Background task to delete refresh sessions past their expiry.

    Expired sessions are already rejected (and deleted) when presented; this task removes the
    ones that are never presented again so the table does not grow without bound.
    """
    logger.info("Starting session cleanup task")

    settings = app[SettingsAppKey]
    cleanup_lock = CleanupLock(
        app[RedisClientAppKey], settings.worker_id, settings.session_cleanup_interval
    )

    while True:
        try:
            await asyncio.sleep(settings.session_cleanup_interval)

            await run_session_cleanup(
                app[RefreshSessionStoreAppKey], cleanup_lock, app[MetricsClientAppKey]
            )
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logging.exception("session cleanup task failed")


async def tick_health_task(app: web.Application) -> NoReturn:
    """
    Tick the health gauge every 30 seconds, reducing the health score by 1 each time.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    while True:
        await health_gauge.tick()
        await asyncio.sleep(30)
