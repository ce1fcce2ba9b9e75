"""
Analysis orchestration.

Decides which analysis kinds run for an entry, snapshots the entry into queue
messages, and performs the unit of work a single queue message maps to:
resolve content (transcribing audio when needed), mark the job record
processing, run the executor, and persist the outcome.

Usage:
    service = AnalysisService(entries, records, queue, executor, transcriber)

    # Preset
    await service.create_builder().healthcare().execute_for(entry_id)

    # Custom
    await (
        service.create_builder()
        .with_mood_analysis(extract_emotions=False)
        .with_trigger_analysis()
        .execute_for(entry_id)
    )
"""

import asyncio
import uuid
from collections.abc import Iterable
from typing import Any, Protocol

from healthlog.core.errors import BuilderSpentError, EntryNotFoundError, UnknownAnalysisTypeError
from healthlog.core.logging import get_logger
from healthlog.models.analysis_job import AnalysisJobRecord, AnalysisStatus, AnalysisType
from healthlog.queue.job_queue import JobQueue
from healthlog.schemas.analysis import (
    AnalysisOptions,
    EnergyAnalysisOptions,
    MoodAnalysisOptions,
    NutritionAnalysisOptions,
    TriggerAnalysisOptions,
)
from healthlog.schemas.queue import QueueJobData
from healthlog.services.entry_store import EntryStore
from healthlog.services.job_records import JobRecordStore

logger = get_logger(__name__)

DEFAULT_ANALYSIS_TYPES = [AnalysisType.MOOD, AnalysisType.ENERGY]


class Analyzer(Protocol):
    async def analyze(
        self,
        analysis_type: AnalysisType,
        content: str,
        journal_entry_id: uuid.UUID | None = None,
    ) -> dict: ...


class Transcriber(Protocol):
    async def transcribe_url(self, audio_url: str) -> str: ...


def _coerce_type(analysis_type: AnalysisType | str) -> AnalysisType:
    try:
        return AnalysisType(analysis_type)
    except ValueError:
        raise UnknownAnalysisTypeError(analysis_type) from None


class AnalysisService:
    """Facade over the queue, job records and executor."""

    def __init__(
        self,
        entries: EntryStore,
        records: JobRecordStore,
        queue: JobQueue,
        executor: Analyzer,
        transcriber: Transcriber,
    ) -> None:
        self.entries = entries
        self.records = records
        self.queue = queue
        self.executor = executor
        self.transcriber = transcriber
        self._background: set[asyncio.Task] = set()

    def create_builder(self) -> "AnalysisBuilder":
        return AnalysisBuilder(self)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def queue_analysis_for_entry(
        self,
        journal_entry_id: uuid.UUID,
        analysis_types: Iterable[AnalysisType | str],
    ) -> list[QueueJobData]:
        """
        Queue one job per kind for an entry, in a single bulk submission.

        Raises:
            EntryNotFoundError: If the entry does not exist
        """
        kinds = [_coerce_type(t) for t in analysis_types]
        entry = await self.entries.find_by_id(journal_entry_id)
        if entry is None:
            raise EntryNotFoundError(journal_entry_id)

        jobs = [
            QueueJobData(
                journal_entry_id=entry.id,
                analysis_type=kind,
                content=entry.content or "",
                audio_url=entry.audio_url,
            )
            for kind in kinds
        ]
        await self.queue.enqueue_bulk(jobs)

        logger.bind(
            entry_id=str(journal_entry_id),
            analysis_types=[k.value for k in kinds],
        ).info("analysis_queued_for_entry")
        return jobs

    async def reprocess_all_entries(self, analysis_type: AnalysisType | str) -> int:
        """
        Queue one job of `analysis_type` for every published entry.

        Returns:
            Number of jobs queued
        """
        kind = _coerce_type(analysis_type)
        entries = await self.entries.list_active()

        jobs = [
            QueueJobData(
                journal_entry_id=entry.id,
                analysis_type=kind,
                content=entry.content or "",
                audio_url=entry.audio_url,
            )
            for entry in entries
        ]
        await self.queue.enqueue_bulk(jobs)

        logger.bind(analysis_type=kind.value, count=len(jobs)).info("analysis_reprocess_queued")
        return len(jobs)

    async def queue_default_analysis(self, journal_entry_id: uuid.UUID) -> bool:
        """
        Queue the default analyses for a newly created or published entry.

        Entry creation must not fail because of this, so errors are logged as
        a degraded-mode event instead of raised.

        Returns:
            True if the jobs were queued
        """
        try:
            await self.queue_analysis_for_entry(journal_entry_id, DEFAULT_ANALYSIS_TYPES)
        except Exception as e:
            logger.bind(
                entry_id=str(journal_entry_id),
                error=str(e),
                error_type=type(e).__name__,
            ).error("default_analysis_enqueue_failed")
            return False
        return True

    def schedule_default_analysis(self, journal_entry_id: uuid.UUID) -> asyncio.Task:
        """Run `queue_default_analysis` in the background without awaiting it."""
        task = asyncio.create_task(self.queue_default_analysis(journal_entry_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -------------------------------------------------------------------------
    # Execution (called by the worker pool)
    # -------------------------------------------------------------------------

    async def process_job(self, job_data: QueueJobData, redelivery: bool = False) -> dict:
        """Worker processor: run the job described by a queue message."""
        result = await self.process_journal_entry(
            job_data.journal_entry_id,
            job_data.analysis_type,
            snapshot=job_data,
            redelivery=redelivery,
        )
        return {"success": True, "analysisType": job_data.analysis_type.value, "result": result}

    async def process_journal_entry(
        self,
        journal_entry_id: uuid.UUID,
        analysis_type: AnalysisType | str,
        snapshot: QueueJobData | None = None,
        redelivery: bool = False,
    ) -> dict[str, Any]:
        """
        Run one analysis for one entry and persist the outcome.

        Content comes from the queue snapshot when it has text, otherwise from
        the entry. Audio entries without text are transcribed first and the
        transcript is saved onto the entry.

        The record's retry_count counts explicit re-runs only; a queue
        redelivery of the same job (backoff retry or retry-all) leaves it alone.

        Raises:
            EntryNotFoundError: If the entry does not exist
            UnknownAnalysisTypeError: For an unsupported kind
            TranscriptionError: If audio can't be transcribed
            Exception: Whatever the executor raised, after the record is marked failed
        """
        kind = _coerce_type(analysis_type)
        entry = await self.entries.find_by_id(journal_entry_id)
        if entry is None:
            raise EntryNotFoundError(journal_entry_id)

        content = snapshot.content if snapshot and snapshot.content.strip() else entry.content or ""

        if not content.strip() and entry.needs_transcription:
            content = await self.transcriber.transcribe_url(entry.audio_url)
            await self.entries.update_content(entry.id, content)

        record = await self.records.begin_processing(entry.id, kind, count_retry=not redelivery)
        bound = logger.bind(
            entry_id=str(journal_entry_id),
            analysis_type=kind.value,
            record_id=str(record.id),
            retry_count=record.retry_count,
        )

        try:
            result = await self.executor.analyze(kind, content, journal_entry_id=entry.id)
        except Exception as e:
            await self.records.mark_failed(record.id, str(e) or type(e).__name__)
            bound.bind(error=str(e)).error("analysis_failed")
            raise

        await self.records.mark_completed(record.id, result)
        bound.info("analysis_completed")
        return result

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    async def get_results_for_entry(self, journal_entry_id: uuid.UUID) -> list[AnalysisJobRecord]:
        return await self.records.list_for_entry(journal_entry_id)

    async def get_completed_results(self) -> list[AnalysisJobRecord]:
        return await self.records.list_by_status(AnalysisStatus.COMPLETED)

    async def get_results_by_type(self, analysis_type: AnalysisType | str) -> list[AnalysisJobRecord]:
        return await self.records.list_by_status(
            AnalysisStatus.COMPLETED, analysis_type=_coerce_type(analysis_type)
        )


class AnalysisBuilder:
    """
    Fluent selection of analysis kinds.

    Each kind is included at most once; selecting it again replaces its
    options. Option flags are advisory and do not change what is queued.
    A builder is single-use: it is spent after `execute_for` or
    `execute_for_all`.
    """

    def __init__(self, service: AnalysisService) -> None:
        self._service = service
        self._options: dict[AnalysisType, AnalysisOptions] = {}
        self._spent = False

    @property
    def kinds(self) -> list[AnalysisType]:
        return list(self._options)

    @property
    def options(self) -> list[AnalysisOptions]:
        return list(self._options.values())

    def _add(self, options: AnalysisOptions) -> "AnalysisBuilder":
        if self._spent:
            raise BuilderSpentError("Analysis builder has already been executed")
        self._options[AnalysisType(options.type)] = options
        return self

    def with_mood_analysis(
        self,
        extract_sentiment: bool = True,
        extract_emotions: bool = True,
        extract_mood_scale: bool = True,
    ) -> "AnalysisBuilder":
        return self._add(
            MoodAnalysisOptions(
                extract_sentiment=extract_sentiment,
                extract_emotions=extract_emotions,
                extract_mood_scale=extract_mood_scale,
            )
        )

    def with_energy_analysis(
        self,
        extract_energy_level: bool = True,
        extract_fatigue_indicators: bool = True,
        extract_sleep_quality: bool = True,
    ) -> "AnalysisBuilder":
        return self._add(
            EnergyAnalysisOptions(
                extract_energy_level=extract_energy_level,
                extract_fatigue_indicators=extract_fatigue_indicators,
                extract_sleep_quality=extract_sleep_quality,
            )
        )

    def with_nutrition_analysis(
        self,
        extract_food_mentions: bool = True,
        extract_calorie_estimates: bool = True,
        extract_macros: bool = True,
        extract_meal_timing: bool = True,
    ) -> "AnalysisBuilder":
        return self._add(
            NutritionAnalysisOptions(
                extract_food_mentions=extract_food_mentions,
                extract_calorie_estimates=extract_calorie_estimates,
                extract_macros=extract_macros,
                extract_meal_timing=extract_meal_timing,
            )
        )

    def with_trigger_analysis(
        self,
        extract_stressors: bool = True,
        extract_cravings: bool = True,
        extract_risk_factors: bool = True,
        extract_coping_strategies: bool = True,
    ) -> "AnalysisBuilder":
        return self._add(
            TriggerAnalysisOptions(
                extract_stressors=extract_stressors,
                extract_cravings=extract_cravings,
                extract_risk_factors=extract_risk_factors,
                extract_coping_strategies=extract_coping_strategies,
            )
        )

    # Presets

    def default(self) -> "AnalysisBuilder":
        """Mood and energy."""
        return self.with_mood_analysis().with_energy_analysis()

    def healthcare(self) -> "AnalysisBuilder":
        """Mood, energy and triggers."""
        return self.with_mood_analysis().with_energy_analysis().with_trigger_analysis()

    def nutrition(self) -> "AnalysisBuilder":
        """Mood, energy and nutrition."""
        return self.with_mood_analysis().with_energy_analysis().with_nutrition_analysis()

    def custom(
        self,
        include_mood: bool = False,
        include_energy: bool = False,
        include_nutrition: bool = False,
        include_triggers: bool = False,
    ) -> "AnalysisBuilder":
        if include_mood:
            self.with_mood_analysis()
        if include_energy:
            self.with_energy_analysis()
        if include_nutrition:
            self.with_nutrition_analysis()
        if include_triggers:
            self.with_trigger_analysis()
        return self

    # Terminal operations

    def _consume(self) -> list[AnalysisType]:
        if self._spent:
            raise BuilderSpentError("Analysis builder has already been executed")
        self._spent = True
        kinds = self.kinds
        self._options = {}
        return kinds

    async def execute_for(self, journal_entry_id: uuid.UUID) -> list[QueueJobData]:
        """Queue the selected kinds for one entry."""
        kinds = self._consume()
        return await self._service.queue_analysis_for_entry(journal_entry_id, kinds)

    async def execute_for_all(self) -> int:
        """Queue each selected kind for every published entry; returns the job count."""
        kinds = self._consume()
        total = 0
        for kind in kinds:
            total += await self._service.reprocess_all_entries(kind)
        return total
