"""
Tests for the background maintenance tasks.

The session cleanup lock is exercised against fakeredis.
"""

import asyncio
from datetime import timedelta

import pytest

from prepdeck.auth.app.config import SESSION_CLEANUP_LOCK
from prepdeck.auth.app.tasks import CleanupLock, run_session_cleanup
from prepdeck.auth.model.health import HealthGauge
from tests.test_helpers import (
    MockStatsdClient,
    create_identity,
    generate_test_datetime,
)


@pytest.fixture
def mock_statsd():
    return MockStatsdClient()


@pytest.fixture
async def expired_sessions(credential_store, session_store):
    identity = await create_identity(credential_store)
    now = generate_test_datetime()
    await session_store.create(
        "expired-1", identity.guid, now - timedelta(days=8), now - timedelta(days=1)
    )
    await session_store.create(
        "expired-2", identity.guid, now - timedelta(days=8), now - timedelta(hours=1)
    )
    await session_store.create("live", identity.guid, now, now + timedelta(days=7))
    return identity


class TestCleanupLock:
    @pytest.mark.asyncio
    async def test_first_worker_wins(self, fake_redis_client):
        first = CleanupLock(fake_redis_client, "worker-1", 3600)
        second = CleanupLock(fake_redis_client, "worker-2", 3600)

        assert await first.acquire() is True
        assert await second.acquire() is False
        assert await fake_redis_client.get(SESSION_CLEANUP_LOCK) == b"worker-1"

    @pytest.mark.asyncio
    async def test_lock_expires_with_interval(self, fake_redis_client):
        lock = CleanupLock(fake_redis_client, "worker-1", 3600)
        await lock.acquire()

        ttl = await fake_redis_client.ttl(SESSION_CLEANUP_LOCK)
        assert 0 < ttl <= 3600


class TestSessionCleanup:
    @pytest.mark.asyncio
    async def test_purges_expired_sessions(
        self, session_store, fake_redis_client, mock_statsd, expired_sessions
    ):
        lock = CleanupLock(fake_redis_client, "worker-1", 3600)

        purged = await run_session_cleanup(session_store, lock, mock_statsd)

        assert purged == 2
        assert await session_store.find_by_token("expired-1") is None
        assert await session_store.find_by_token("expired-2") is None
        assert await session_store.find_by_token("live") is not None
        assert (
            mock_statsd.count(
                "prepdeck.task.session_cleanup.expired_sessions_removed",
                worker_id="worker-1",
            )
            == 2
        )
        assert "prepdeck.task.session_cleanup.time" in mock_statsd.timers

    @pytest.mark.asyncio
    async def test_skipped_when_another_worker_holds_the_lock(
        self, session_store, fake_redis_client, mock_statsd, expired_sessions
    ):
        await CleanupLock(fake_redis_client, "worker-1", 3600).acquire()
        lock = CleanupLock(fake_redis_client, "worker-2", 3600)

        assert await run_session_cleanup(session_store, lock, mock_statsd) is None
        assert await session_store.find_by_token("expired-1") is not None
        assert mock_statsd.increments == {}

    @pytest.mark.asyncio
    async def test_once_per_interval(
        self, session_store, fake_redis_client, mock_statsd, expired_sessions
    ):
        lock = CleanupLock(fake_redis_client, "worker-1", 3600)

        assert await run_session_cleanup(session_store, lock, mock_statsd) == 2
        assert await run_session_cleanup(session_store, lock, mock_statsd) is None

    @pytest.mark.asyncio
    async def test_explicit_now(
        self, session_store, fake_redis_client, mock_statsd, expired_sessions
    ):
        """Sessions that have not expired yet are purged once `now` passes their expiry."""
        lock = CleanupLock(fake_redis_client, "worker-1", 3600)
        later = generate_test_datetime() + timedelta(days=8)

        assert await run_session_cleanup(session_store, lock, mock_statsd, now=later) == 3


class TestHealthGauge:
    @pytest.mark.asyncio
    async def test_burst_then_decay(self):
        gauge = HealthGauge(health_threshold=2)

        for _ in range(3):
            await gauge.womp()
        assert await gauge.is_healthy() is False

        await gauge.tick()
        assert await gauge.is_healthy() is True

    @pytest.mark.asyncio
    async def test_tick_never_goes_negative(self):
        gauge = HealthGauge()
        await gauge.tick()
        assert await gauge.womp() == 1

    @pytest.mark.asyncio
    async def test_concurrent_womps(self):
        gauge = HealthGauge()
        await asyncio.gather(*[gauge.womp() for _ in range(50)])
        assert await gauge.womp() == 51
