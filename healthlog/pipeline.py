"""
Composition root for the analysis pipeline.

Builds the queue, worker pool, stores and services from configuration and
owns their start/stop lifecycle. The API and the CLI each construct one
pipeline per process.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from healthlog.config import AppConfig, get_config
from healthlog.core.database import check_connection, create_engine, create_session_factory
from healthlog.core.logging import get_logger
from healthlog.core.retry import RetryConfig, retry_with_backoff
from healthlog.core.scheduler import MaintenanceScheduler
from healthlog.queue.job_queue import JobQueue
from healthlog.queue.worker import WorkerPool
from healthlog.services.analysis import Analyzer, AnalysisService, Transcriber
from healthlog.services.entry_store import EntryStore
from healthlog.services.executor import AnalysisExecutor
from healthlog.services.job_records import JobRecordStore
from healthlog.services.transcription import AudioLoader, TranscriptionService

logger = get_logger(__name__)


class AnalysisPipeline:
    """Queue, workers and services wired together."""

    def __init__(
        self,
        config: AppConfig,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
        executor: Analyzer | None = None,
        transcriber: Transcriber | None = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.session_factory = session_factory

        self.queue = JobQueue(session_factory, config.queue)
        self.entries = EntryStore(session_factory)
        self.records = JobRecordStore(session_factory)
        self.service = AnalysisService(
            entries=self.entries,
            records=self.records,
            queue=self.queue,
            executor=executor or AnalysisExecutor(),
            transcriber=transcriber
            or TranscriptionService(loader=AudioLoader(config.settings.uploads_dir)),
        )
        self.workers = WorkerPool(self.queue, self.service.process_job, config.worker)
        self.scheduler = MaintenanceScheduler(self.queue, config.queue)

        self.workers.on_completed(self._log_completed)
        self.workers.on_failed(self._log_failed)

    @classmethod
    def from_config(cls, config: AppConfig | None = None) -> "AnalysisPipeline":
        config = config or get_config()
        engine = create_engine(config.settings)
        return cls(config, create_session_factory(engine), engine=engine)

    async def start(self, workers: bool = True, scheduler: bool = True) -> None:
        """Verify the database, then start workers and maintenance as requested."""
        if self.engine is not None:
            await retry_with_backoff(
                lambda: check_connection(self.engine),
                config=RetryConfig(max_attempts=5, backoff_base=1.0),
                operation_name="database_connect",
            )
        if workers:
            await self.workers.start()
        if scheduler:
            await self.scheduler.start()
        logger.bind(workers=workers, scheduler=scheduler).info("pipeline_started")

    async def stop(self) -> None:
        """Stop dequeuing, let in-flight jobs finish, then release connections."""
        await self.scheduler.stop()
        await self.workers.stop()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("pipeline_stopped")

    @staticmethod
    def _log_completed(job, result) -> None:
        logger.bind(job_id=str(job.id), attempts=job.attempts_made).debug("queue_job_completed")

    @staticmethod
    def _log_failed(job, error, final) -> None:
        if final:
            logger.bind(
                job_id=str(job.id),
                attempts=job.attempts_made,
                error=str(error),
            ).error("queue_job_exhausted")
