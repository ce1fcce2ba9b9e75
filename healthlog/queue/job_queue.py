"""
Durable priority queue for analysis jobs.

Jobs live in the `queue_jobs` table and move through
delayed -> waiting -> active -> completed | failed. A failed delivery is
rescheduled with exponential backoff until its attempts are used up, after
which it stays `failed` until `retry_all_failed()` resubmits it.

Claiming is a conditional UPDATE on the job's state, so several consumers
(in this process or others) never receive the same delivery.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthlog.config import QueueConfig
from healthlog.core.datetime_utils import after_ms, get_cutoff, utc_now
from healthlog.core.logging import get_logger
from healthlog.core.retry import backoff_delay_ms
from healthlog.models.analysis_job import AnalysisType
from healthlog.models.queue_job import QueueJob, QueueJobState
from healthlog.schemas.queue import JobCounts, QueueJobData

logger = get_logger(__name__)

JOB_NAME = "process-analysis"

# Claims can lose a race to another consumer; retry a few candidates before giving up
MAX_CLAIM_ATTEMPTS = 5


class JobQueue:
    """Analysis job queue backed by the relational database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: QueueConfig,
    ) -> None:
        self._session_factory = session_factory
        self.config = config
        self.name = config.name

    def priority_for(self, analysis_type: AnalysisType) -> int:
        """Trigger analysis outranks every other kind."""
        if analysis_type == AnalysisType.TRIGGERS:
            return self.config.trigger_priority
        return self.config.default_priority

    def _build_job(
        self,
        job_data: QueueJobData,
        priority: int | None,
        delay_ms: int,
        created_at: datetime,
    ) -> QueueJob:
        return QueueJob(
            queue_name=self.name,
            name=JOB_NAME,
            data=job_data.model_dump(mode="json"),
            priority=self.priority_for(job_data.analysis_type) if priority is None else priority,
            state=QueueJobState.DELAYED if delay_ms > 0 else QueueJobState.WAITING,
            attempts_made=0,
            resubmitted=False,
            max_attempts=self.config.attempts,
            backoff_delay_ms=self.config.backoff_delay_ms,
            created_at=created_at,
            available_at=after_ms(delay_ms, created_at),
        )

    async def enqueue(
        self,
        job_data: QueueJobData,
        priority: int | None = None,
        delay_ms: int | None = None,
    ) -> QueueJob:
        """
        Add one job to the queue.

        Args:
            job_data: Message payload
            priority: Higher is dequeued first; defaults to the kind's priority
            delay_ms: Time before the job becomes available; defaults to the
                configured delay so jobs from one entry land together

        Returns:
            The persisted queue job
        """
        delay = self.config.delay_ms if delay_ms is None else delay_ms
        job = self._build_job(job_data, priority, delay, utc_now())

        async with self._session_factory() as db:
            db.add(job)
            await db.commit()

        logger.bind(
            job_id=str(job.id),
            entry_id=str(job_data.journal_entry_id),
            analysis_type=job_data.analysis_type.value,
            priority=job.priority,
            delay_ms=delay,
        ).debug("queue_job_added")
        return job

    async def enqueue_bulk(self, job_data_list: Sequence[QueueJobData]) -> list[QueueJob]:
        """
        Add many jobs in one transaction.

        Bulk jobs carry no delay. Creation times are strictly increasing in
        submission order so FIFO holds within a priority tier.
        """
        if not job_data_list:
            return []

        now = utc_now()
        jobs = [
            self._build_job(job_data, None, 0, now + timedelta(microseconds=i))
            for i, job_data in enumerate(job_data_list)
        ]

        async with self._session_factory() as db:
            db.add_all(jobs)
            await db.commit()

        logger.bind(count=len(jobs), queue=self.name).info("queue_bulk_added")
        return jobs

    async def get_job(self, job_id: uuid.UUID) -> QueueJob | None:
        """Fetch a queue job by id."""
        async with self._session_factory() as db:
            return await db.get(QueueJob, job_id)

    async def counts(self) -> JobCounts:
        """Number of jobs per state; delayed jobs count as waiting."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(QueueJob.state, func.count(QueueJob.id))
                .where(QueueJob.queue_name == self.name)
                .group_by(QueueJob.state)
            )
            by_state = {state: count for state, count in result.all()}

        return JobCounts(
            waiting=by_state.get(QueueJobState.WAITING, 0) + by_state.get(QueueJobState.DELAYED, 0),
            active=by_state.get(QueueJobState.ACTIVE, 0),
            completed=by_state.get(QueueJobState.COMPLETED, 0),
            failed=by_state.get(QueueJobState.FAILED, 0),
        )

    async def claim_next(self) -> QueueJob | None:
        """
        Move the next available job to `active` and return it.

        Due delayed jobs are promoted first. Order: highest priority, then
        oldest creation time. Returns None when nothing is available.
        """
        async with self._session_factory() as db:
            now = utc_now()
            await db.execute(
                update(QueueJob)
                .where(
                    QueueJob.queue_name == self.name,
                    QueueJob.state == QueueJobState.DELAYED,
                    QueueJob.available_at <= now,
                )
                .values(state=QueueJobState.WAITING)
            )
            await db.commit()

            for _ in range(MAX_CLAIM_ATTEMPTS):
                candidate = await db.execute(
                    select(QueueJob.id)
                    .where(
                        QueueJob.queue_name == self.name,
                        QueueJob.state == QueueJobState.WAITING,
                    )
                    .order_by(QueueJob.priority.desc(), QueueJob.created_at.asc())
                    .limit(1)
                    .with_for_update(skip_locked=True)
                )
                job_id = candidate.scalar_one_or_none()
                if job_id is None:
                    await db.commit()
                    return None

                claimed = await db.execute(
                    update(QueueJob)
                    .where(QueueJob.id == job_id, QueueJob.state == QueueJobState.WAITING)
                    .values(
                        state=QueueJobState.ACTIVE,
                        attempts_made=QueueJob.attempts_made + 1,
                        processed_at=now,
                    )
                )
                await db.commit()
                if claimed.rowcount == 1:
                    return await db.get(QueueJob, job_id, populate_existing=True)

        logger.bind(queue=self.name).debug("queue_claim_contended")
        return None

    async def complete(self, job_id: uuid.UUID, return_value: dict | None = None) -> None:
        """Mark an active job completed and trim completed-job retention."""
        async with self._session_factory() as db:
            await db.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id)
                .values(
                    state=QueueJobState.COMPLETED,
                    return_value=return_value,
                    failed_reason=None,
                    finished_at=utc_now(),
                )
            )
            await self._trim(db, QueueJobState.COMPLETED, self.config.remove_on_complete)
            await db.commit()

    async def fail(self, job_id: uuid.UUID, error: str, final: bool = False) -> bool:
        """
        Record a failed delivery attempt.

        Reschedules the job with exponential backoff while attempts remain,
        unless `final` is set, which fails the job immediately.

        Returns:
            True if the job is now permanently failed
        """
        async with self._session_factory() as db:
            job = await db.get(QueueJob, job_id)
            if job is None:
                logger.bind(job_id=str(job_id)).warning("queue_fail_unknown_job")
                return True

            job.failed_reason = error
            if not final and job.attempts_made < job.max_attempts:
                delay = backoff_delay_ms(job.attempts_made, job.backoff_delay_ms)
                job.state = QueueJobState.DELAYED
                job.available_at = after_ms(delay)
                await db.commit()
                logger.bind(
                    job_id=str(job_id),
                    attempt=job.attempts_made,
                    max_attempts=job.max_attempts,
                    delay_ms=delay,
                ).warning("queue_job_retry_scheduled")
                return False

            job.state = QueueJobState.FAILED
            job.finished_at = utc_now()
            await db.flush()
            await self._trim(db, QueueJobState.FAILED, self.config.remove_on_fail)
            await db.commit()
            return True

    async def retry_all_failed(self) -> int:
        """
        Resubmit every failed job for a fresh set of delivery attempts.

        Resubmitted jobs are delivered as redeliveries, so job records keep
        their retry_count.

        Returns:
            Number of jobs resubmitted
        """
        async with self._session_factory() as db:
            result = await db.execute(
                update(QueueJob)
                .where(
                    QueueJob.queue_name == self.name,
                    QueueJob.state == QueueJobState.FAILED,
                )
                .values(
                    state=QueueJobState.WAITING,
                    attempts_made=0,
                    resubmitted=True,
                    failed_reason=None,
                    finished_at=None,
                    available_at=utc_now(),
                )
            )
            await db.commit()

        retried = result.rowcount or 0
        logger.bind(queue=self.name, count=retried).info("queue_failed_jobs_retried")
        return retried

    async def clean(self, max_age_ms: int, keep_count: int) -> int:
        """
        Remove finished jobs older than `max_age_ms`.

        The newest `keep_count` jobs of each finished state are never removed,
        and configured retention limits are enforced afterwards.

        Returns:
            Number of jobs removed
        """
        cutoff = get_cutoff(milliseconds=max_age_ms)
        removed = 0

        async with self._session_factory() as db:
            for state, retention in (
                (QueueJobState.COMPLETED, self.config.remove_on_complete),
                (QueueJobState.FAILED, self.config.remove_on_fail),
            ):
                kept = (
                    select(QueueJob.id)
                    .where(QueueJob.queue_name == self.name, QueueJob.state == state)
                    .order_by(QueueJob.finished_at.desc())
                    .limit(keep_count)
                )
                kept_ids = list((await db.execute(kept)).scalars().all())

                stmt = delete(QueueJob).where(
                    QueueJob.queue_name == self.name,
                    QueueJob.state == state,
                    QueueJob.finished_at < cutoff,
                )
                if kept_ids:
                    stmt = stmt.where(QueueJob.id.not_in(kept_ids))
                result = await db.execute(stmt)
                removed += result.rowcount or 0
                removed += await self._trim(db, state, retention)

            await db.commit()

        logger.bind(queue=self.name, removed=removed).info("queue_cleaned")
        return removed

    async def _trim(self, db: AsyncSession, state: QueueJobState, keep: int) -> int:
        """Delete all but the newest `keep` jobs in a finished state."""
        stale = (
            select(QueueJob.id)
            .where(QueueJob.queue_name == self.name, QueueJob.state == state)
            .order_by(QueueJob.finished_at.desc())
            .offset(keep)
        )
        stale_ids = list((await db.execute(stale)).scalars().all())
        if not stale_ids:
            return 0
        result = await db.execute(delete(QueueJob).where(QueueJob.id.in_(stale_ids)))
        return result.rowcount or 0
