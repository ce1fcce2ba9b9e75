"""
Fixed-concurrency worker pool consuming the analysis queue.

Each consumer task claims a job, hands its payload to the processor and
reports the outcome back to the queue. Processor exceptions become failed
delivery attempts, which the queue retries with backoff unless the error
is marked `retryable = False`.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from healthlog.config import WorkerConfig
from healthlog.core.logging import get_logger
from healthlog.models.queue_job import QueueJob
from healthlog.queue.job_queue import JobQueue
from healthlog.schemas.queue import QueueJobData

logger = get_logger(__name__)

# Called with (payload, redelivery)
Processor = Callable[[QueueJobData, bool], Awaitable[Any]]
CompletedListener = Callable[[QueueJob, Any], Any]
FailedListener = Callable[[QueueJob, Exception, bool], Any]


class WorkerPool:
    """Runs up to `concurrency` jobs at a time from a JobQueue."""

    def __init__(self, queue: JobQueue, processor: Processor, config: WorkerConfig) -> None:
        self.queue = queue
        self.processor = processor
        self.concurrency = config.concurrency
        self.poll_interval = config.poll_interval_seconds

        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()
        self._completed_listeners: list[CompletedListener] = []
        self._failed_listeners: list[FailedListener] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stopping.is_set()

    def on_completed(self, listener: CompletedListener) -> None:
        """Register a listener called with (job, result) after each success."""
        self._completed_listeners.append(listener)

    def on_failed(self, listener: FailedListener) -> None:
        """Register a listener called with (job, error, final) after each failure."""
        self._failed_listeners.append(listener)

    async def start(self) -> None:
        """Spawn the consumer tasks."""
        if self._tasks:
            return

        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._consume(i), name=f"analysis-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.bind(queue=self.queue.name, concurrency=self.concurrency).info("worker_pool_started")

    async def stop(self) -> None:
        """Stop claiming new jobs and wait for in-flight jobs to finish."""
        if not self._tasks:
            return

        self._stopping.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.bind(queue=self.queue.name).info("worker_pool_stopped")

    async def process_one(self) -> bool:
        """
        Claim and process a single job.

        Returns:
            False if no job was available
        """
        job = await self.queue.claim_next()
        if job is None:
            return False

        await self._handle(job)
        return True

    async def drain(self) -> int:
        """Process jobs one at a time until none are available; returns the count."""
        processed = 0
        while await self.process_one():
            processed += 1
        return processed

    async def _consume(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.process_one()
            except Exception as e:
                # Queue/database errors; keep the consumer alive
                logger.bind(worker=index, error=str(e)).error("worker_error")
                processed = False

            if not processed:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except TimeoutError:
                    pass

    async def _handle(self, job: QueueJob) -> None:
        try:
            job_data = QueueJobData.model_validate(job.data)
        except ValidationError as e:
            # Malformed payloads are never retried
            await self.queue.fail(job.id, str(e), final=True)
            logger.bind(job_id=str(job.id), error=str(e)).error("analysis_job_invalid_payload")
            await self._emit(self._failed_listeners, job, e, True)
            return

        redelivery = job.is_redelivery
        bound = logger.bind(
            job_id=str(job.id),
            entry_id=str(job_data.journal_entry_id),
            analysis_type=job_data.analysis_type.value,
            attempt=job.attempts_made,
            redelivery=redelivery,
        )
        bound.info("analysis_job_started")

        try:
            result = await self.processor(job_data, redelivery)
        except Exception as e:
            retryable = getattr(e, "retryable", True)
            final = await self.queue.fail(job.id, str(e) or type(e).__name__, final=not retryable)
            bound.bind(error=str(e), final=final, retryable=retryable).error("analysis_job_failed")
            await self._emit(self._failed_listeners, job, e, final)
            return

        return_value = result if isinstance(result, dict) else {"success": True}
        await self.queue.complete(job.id, return_value)
        bound.info("analysis_job_completed")
        await self._emit(self._completed_listeners, job, result)

    async def _emit(self, listeners: list, *args: Any) -> None:
        for listener in listeners:
            try:
                outcome = listener(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.bind(error=str(e)).warning("worker_listener_error")
