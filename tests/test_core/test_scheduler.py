"""Tests for scheduled queue maintenance."""

from unittest.mock import AsyncMock

import pytest

from healthlog.config import QueueConfig
from healthlog.core.scheduler import MaintenanceScheduler, queue_clean_job

pytestmark = pytest.mark.asyncio


class TestQueueCleanJob:
    """Tests for the daily clean job."""

    async def test_cleans_with_configured_limits(self):
        queue = AsyncMock()
        queue.clean.return_value = 3

        await queue_clean_job(queue, max_age_ms=86_400_000, keep_count=100)

        queue.clean.assert_awaited_once_with(86_400_000, 100)

    async def test_failure_is_reraised(self):
        queue = AsyncMock()
        queue.clean.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await queue_clean_job(queue, max_age_ms=1, keep_count=1)


class TestMaintenanceScheduler:
    async def test_not_running_until_started(self):
        scheduler = MaintenanceScheduler(AsyncMock(), QueueConfig({}))

        assert scheduler.running is False
        assert await scheduler.get_schedules() == []
        await scheduler.stop()
