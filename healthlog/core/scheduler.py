"""
APScheduler integration for queue maintenance.

Jobs:
- Queue clean: prunes finished queue jobs older than the configured age (daily, 03:00 UTC)
"""

from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger

from healthlog.config import QueueConfig
from healthlog.core.logging import get_logger
from healthlog.queue.job_queue import JobQueue

logger = get_logger(__name__)


async def queue_clean_job(queue: JobQueue, max_age_ms: int, keep_count: int) -> None:
    """Remove stale finished jobs from the analysis queue."""
    logger.info("scheduled_queue_clean_started")
    try:
        removed = await queue.clean(max_age_ms, keep_count)
        logger.bind(removed=removed).info("scheduled_queue_clean_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_queue_clean_failed")
        raise  # Re-raise so APScheduler records the failure


class MaintenanceScheduler:
    """Owns the AsyncScheduler running periodic queue maintenance."""

    def __init__(self, queue: JobQueue, config: QueueConfig) -> None:
        self.queue = queue
        self.config = config
        self._scheduler: AsyncScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        if self._scheduler is not None:
            return

        # Schedules are rebuilt on every start, so in-memory storage is enough
        scheduler = AsyncScheduler(data_store=MemoryDataStore())

        # Start the scheduler first (required before calling other methods in APScheduler 4.x)
        await scheduler.__aenter__()

        await scheduler.add_schedule(
            queue_clean_job,
            CronTrigger(hour=3, minute=0),
            id="queue_clean",
            kwargs={
                "queue": self.queue,
                "max_age_ms": self.config.clean_max_age_hours * 60 * 60 * 1000,
                "keep_count": self.config.clean_keep,
            },
            conflict_policy=ConflictPolicy.replace,
        )
        await scheduler.start_in_background()
        self._scheduler = scheduler

        logger.bind(jobs=["queue_clean"]).info("scheduler_started")

    async def stop(self) -> None:
        """Gracefully stop the scheduler."""
        if self._scheduler is not None:
            await self._scheduler.__aexit__(None, None, None)
            self._scheduler = None
            logger.info("scheduler_stopped")

    async def get_schedules(self) -> list[dict[str, Any]]:
        """Get all registered schedules."""
        if self._scheduler is None:
            return []

        schedules = await self._scheduler.get_schedules()
        return [
            {
                "id": s.id,
                "task_id": s.task_id,
                "trigger": str(s.trigger),
                "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
                "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
            }
            for s in schedules
        ]
