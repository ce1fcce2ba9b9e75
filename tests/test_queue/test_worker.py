"""Tests for the worker pool."""

import asyncio
import uuid

import pytest

from healthlog.config import QueueConfig, WorkerConfig
from healthlog.core.errors import EntryNotFoundError, UnknownAnalysisTypeError
from healthlog.models.analysis_job import AnalysisType
from healthlog.models.queue_job import QueueJob, QueueJobState
from healthlog.queue.job_queue import JobQueue
from healthlog.queue.worker import WorkerPool
from healthlog.schemas.queue import QueueJobData

pytestmark = pytest.mark.asyncio


class ScriptedProcessor:
    """Processor that fails the first `fail_times` calls."""

    def __init__(self, fail_times: int = 0, delay: float = 0, error: Exception | None = None) -> None:
        self.fail_times = fail_times
        self.error = error or RuntimeError("LLM timeout")
        self.delay = delay
        self.received: list[QueueJobData] = []
        self.redeliveries: list[bool] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, job_data: QueueJobData, redelivery: bool) -> dict:
        self.received.append(job_data)
        self.redeliveries.append(redelivery)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_times > 0:
                self.fail_times -= 1
                raise self.error
            return {"success": True, "analysisType": job_data.analysis_type.value}
        finally:
            self.in_flight -= 1


@pytest.fixture
def queue(session_factory) -> JobQueue:
    return JobQueue(session_factory, QueueConfig({"delay_ms": 0, "backoff_delay_ms": 0}))


def make_pool(queue: JobQueue, processor, concurrency: int = 5) -> WorkerPool:
    return WorkerPool(
        queue,
        processor,
        WorkerConfig({"concurrency": concurrency, "poll_interval_seconds": 0.01}),
    )


async def wait_for_completed(queue: JobQueue, expected: int, timeout: float = 5.0) -> None:
    async def poll() -> None:
        while (await queue.counts()).completed < expected:
            await asyncio.sleep(0.02)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestProcessOne:
    """Tests for single-job processing."""

    async def test_no_job_available(self, queue):
        pool = make_pool(queue, ScriptedProcessor())

        assert await pool.process_one() is False

    async def test_success_completes_job(self, queue, make_job_data):
        """Processor result should be stored as the job's return value."""
        processor = ScriptedProcessor()
        pool = make_pool(queue, processor)
        job = await queue.enqueue(make_job_data(AnalysisType.ENERGY, content="Long day"))

        assert await pool.process_one() is True

        stored = await queue.get_job(job.id)
        assert stored.state == QueueJobState.COMPLETED
        assert stored.return_value == {"success": True, "analysisType": "energy"}
        assert processor.received[0].content == "Long day"

    async def test_transient_failure_then_success(self, queue, make_job_data):
        """A job failing once should complete on its retry with no error left."""
        pool = make_pool(queue, ScriptedProcessor(fail_times=1))
        job = await queue.enqueue(make_job_data())

        processed = await pool.drain()

        stored = await queue.get_job(job.id)
        assert processed == 2
        assert stored.state == QueueJobState.COMPLETED
        assert stored.attempts_made == 2
        assert stored.failed_reason is None

    async def test_exhausted_attempts(self, queue, make_job_data):
        """A job that always fails should end failed after three attempts."""
        pool = make_pool(queue, ScriptedProcessor(fail_times=10))
        job = await queue.enqueue(make_job_data())

        processed = await pool.drain()

        stored = await queue.get_job(job.id)
        assert processed == 3
        assert stored.state == QueueJobState.FAILED
        assert stored.failed_reason == "LLM timeout"


class TestRedelivery:
    """Tests for the redelivery flag handed to the processor."""

    async def test_backoff_retry_is_a_redelivery(self, queue, make_job_data):
        processor = ScriptedProcessor(fail_times=1)
        pool = make_pool(queue, processor)
        await queue.enqueue(make_job_data())

        await pool.drain()

        assert processor.redeliveries == [False, True]

    async def test_retry_all_failed_is_a_redelivery(self, queue, make_job_data):
        """A resubmitted job keeps counting as the same submission."""
        processor = ScriptedProcessor(fail_times=3)
        pool = make_pool(queue, processor)
        await queue.enqueue(make_job_data())
        await pool.drain()

        await queue.retry_all_failed()
        await pool.drain()

        assert processor.redeliveries == [False, True, True, True]


class TestNonRetryableErrors:
    """Errors that can't succeed on another delivery fail the job at once."""

    @pytest.mark.parametrize(
        "error",
        [EntryNotFoundError(uuid.uuid4()), UnknownAnalysisTypeError("sleep")],
    )
    async def test_delivered_once(self, queue, make_job_data, error):
        pool = make_pool(queue, ScriptedProcessor(fail_times=10, error=error))
        finals = []
        pool.on_failed(lambda job, e, final: finals.append(final))
        job = await queue.enqueue(make_job_data())

        processed = await pool.drain()

        stored = await queue.get_job(job.id)
        assert processed == 1
        assert finals == [True]
        assert stored.state == QueueJobState.FAILED
        assert stored.failed_reason == str(error)

    async def test_invalid_payload_fails_without_calling_processor(self, queue, make_job_data):
        processor = ScriptedProcessor()
        pool = make_pool(queue, processor)
        job = await queue.enqueue(make_job_data())
        async with queue._session_factory() as db:
            stored = await db.get(QueueJob, job.id)
            stored.data = {**stored.data, "analysis_type": "sleep"}
            await db.commit()

        processed = await pool.drain()

        assert processed == 1
        assert processor.received == []
        assert (await queue.get_job(job.id)).state == QueueJobState.FAILED


class TestListeners:
    """Tests for completed/failed listeners."""

    async def test_completed_listener(self, queue, make_job_data):
        pool = make_pool(queue, ScriptedProcessor())
        seen = []
        pool.on_completed(lambda job, result: seen.append((job.id, result)))
        job = await queue.enqueue(make_job_data())

        await pool.process_one()

        assert seen == [(job.id, {"success": True, "analysisType": "mood"})]

    async def test_failed_listener_reports_final_attempt(self, queue, make_job_data):
        """Failed listeners should be told which failure was the last one."""
        pool = make_pool(queue, ScriptedProcessor(fail_times=10))
        finals = []

        async def on_failed(job, error, final):
            finals.append((str(error), final))

        pool.on_failed(on_failed)
        await queue.enqueue(make_job_data())

        await pool.drain()

        assert finals == [("LLM timeout", False), ("LLM timeout", False), ("LLM timeout", True)]

    async def test_listener_errors_do_not_break_processing(self, queue, make_job_data):
        pool = make_pool(queue, ScriptedProcessor())

        def broken(job, result):
            raise ValueError("listener bug")

        pool.on_completed(broken)
        job = await queue.enqueue(make_job_data())

        assert await pool.process_one() is True
        assert (await queue.get_job(job.id)).state == QueueJobState.COMPLETED


class TestLifecycle:
    """Tests for starting and stopping the pool."""

    async def test_runs_jobs_concurrently(self, queue, make_job_data):
        """Started pool should process everything with bounded concurrency."""
        processor = ScriptedProcessor(delay=0.05)
        pool = make_pool(queue, processor, concurrency=3)
        await queue.enqueue_bulk([make_job_data() for _ in range(6)])

        await pool.start()
        assert pool.running is True
        try:
            await wait_for_completed(queue, 6)
        finally:
            await pool.stop()

        assert pool.running is False
        assert len(processor.received) == 6
        assert 1 <= processor.max_in_flight <= 3

    async def test_stop_waits_for_in_flight_job(self, queue, make_job_data):
        """Stopping should let an active job finish rather than abandon it."""
        processor = ScriptedProcessor(delay=0.2)
        pool = make_pool(queue, processor, concurrency=1)
        job = await queue.enqueue(make_job_data())

        await pool.start()
        while not processor.received:
            await asyncio.sleep(0.01)
        await pool.stop()

        assert (await queue.get_job(job.id)).state == QueueJobState.COMPLETED

    async def test_start_and_stop_are_idempotent(self, queue):
        pool = make_pool(queue, ScriptedProcessor(), concurrency=2)

        await pool.start()
        await pool.start()
        assert len(pool._tasks) == 2

        await pool.stop()
        await pool.stop()
        assert pool.running is False
