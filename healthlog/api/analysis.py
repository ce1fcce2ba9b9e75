"""Analysis submission and queue management endpoints."""

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from healthlog.core.errors import EntryNotFoundError
from healthlog.dependencies import Analysis, Pipeline, Queue
from healthlog.models.analysis_job import AnalysisJobRecord, AnalysisStatus, AnalysisType
from healthlog.schemas.queue import JobCounts
from healthlog.services.analysis import DEFAULT_ANALYSIS_TYPES, AnalysisBuilder

router = APIRouter()


class AnalysisResultResponse(BaseModel):
    """Response model for a job record."""

    id: uuid.UUID
    journal_entry_id: uuid.UUID
    analysis_type: AnalysisType
    status: AnalysisStatus
    result: dict[str, Any] | None
    error_message: str | None
    retry_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: AnalysisJobRecord) -> "AnalysisResultResponse":
        return cls(
            id=record.id,
            journal_entry_id=record.journal_entry_id,
            analysis_type=record.analysis_type,
            status=record.status,
            result=record.result,
            error_message=record.error_message,
            retry_count=record.retry_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ProcessRequest(BaseModel):
    analysis_types: list[AnalysisType] = Field(default_factory=lambda: list(DEFAULT_ANALYSIS_TYPES))


class CustomAnalysisRequest(BaseModel):
    include_mood: bool = False
    include_energy: bool = False
    include_nutrition: bool = False
    include_triggers: bool = False


class QueuedResponse(BaseModel):
    message: str
    analysis_types: list[AnalysisType] = []
    queued: int = 0


class QueueActionResponse(BaseModel):
    message: str
    count: int


async def _execute_builder(
    builder: AnalysisBuilder, entry_id: uuid.UUID, label: str
) -> QueuedResponse:
    kinds = builder.kinds
    try:
        jobs = await builder.execute_for(entry_id)
    except EntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return QueuedResponse(message=f"{label} analysis queued", analysis_types=kinds, queued=len(jobs))


@router.get("/analysis", response_model=list[AnalysisResultResponse])
async def list_completed_results(service: Analysis) -> list[AnalysisResultResponse]:
    """All completed analysis results, newest first."""
    records = await service.get_completed_results()
    return [AnalysisResultResponse.from_record(r) for r in records]


@router.get("/analysis/type/{analysis_type}", response_model=list[AnalysisResultResponse])
async def list_results_by_type(
    analysis_type: AnalysisType, service: Analysis
) -> list[AnalysisResultResponse]:
    """Completed results of one analysis kind."""
    records = await service.get_results_by_type(analysis_type)
    return [AnalysisResultResponse.from_record(r) for r in records]


@router.get("/analysis/entry/{entry_id}", response_model=list[AnalysisResultResponse])
async def list_results_for_entry(
    entry_id: uuid.UUID, service: Analysis
) -> list[AnalysisResultResponse]:
    """Every job record of an entry, whatever its status."""
    records = await service.get_results_for_entry(entry_id)
    return [AnalysisResultResponse.from_record(r) for r in records]


@router.post("/analysis/process/{entry_id}", response_model=QueuedResponse)
async def process_entry(
    entry_id: uuid.UUID, service: Analysis, body: ProcessRequest | None = None
) -> QueuedResponse:
    """Queue analyses for one entry (mood and energy by default)."""
    analysis_types = (body or ProcessRequest()).analysis_types
    try:
        jobs = await service.queue_analysis_for_entry(entry_id, analysis_types)
    except EntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return QueuedResponse(
        message="Analysis queued successfully",
        analysis_types=analysis_types,
        queued=len(jobs),
    )


@router.post("/analysis/reprocess/{analysis_type}", response_model=QueuedResponse)
async def reprocess_type(analysis_type: AnalysisType, service: Analysis) -> QueuedResponse:
    """Queue one analysis kind for every published entry."""
    queued = await service.reprocess_all_entries(analysis_type)
    return QueuedResponse(
        message=f"Reprocessing queued for {analysis_type.value} analysis",
        analysis_types=[analysis_type],
        queued=queued,
    )


@router.post("/analysis/process-all", response_model=QueuedResponse)
async def process_all_entries(
    service: Analysis, body: ProcessRequest | None = None
) -> QueuedResponse:
    """Queue the given kinds (mood and energy by default) for every published entry."""
    analysis_types = (body or ProcessRequest()).analysis_types
    queued = 0
    for analysis_type in analysis_types:
        queued += await service.reprocess_all_entries(analysis_type)
    return QueuedResponse(
        message="Bulk processing queued successfully",
        analysis_types=analysis_types,
        queued=queued,
    )


@router.get("/analysis/queue/status", response_model=JobCounts)
async def queue_status(queue: Queue) -> JobCounts:
    """Job counts per queue state."""
    return await queue.counts()


@router.post("/analysis/queue/retry-failed", response_model=QueueActionResponse)
async def retry_failed_jobs(queue: Queue) -> QueueActionResponse:
    """Resubmit every failed queue job."""
    count = await queue.retry_all_failed()
    return QueueActionResponse(message="Failed jobs retried", count=count)


@router.post("/analysis/queue/clean", response_model=QueueActionResponse)
async def clean_queue(pipeline: Pipeline) -> QueueActionResponse:
    """Remove finished jobs older than the configured age."""
    queue_config = pipeline.config.queue
    count = await pipeline.queue.clean(
        max_age_ms=queue_config.clean_max_age_hours * 60 * 60 * 1000,
        keep_count=queue_config.clean_keep,
    )
    return QueueActionResponse(message="Queue cleaned", count=count)


@router.post("/analysis/builder/default/{entry_id}", response_model=QueuedResponse)
async def process_with_default_builder(entry_id: uuid.UUID, service: Analysis) -> QueuedResponse:
    return await _execute_builder(service.create_builder().default(), entry_id, "Default")


@router.post("/analysis/builder/healthcare/{entry_id}", response_model=QueuedResponse)
async def process_with_healthcare_builder(entry_id: uuid.UUID, service: Analysis) -> QueuedResponse:
    return await _execute_builder(service.create_builder().healthcare(), entry_id, "Healthcare")


@router.post("/analysis/builder/nutrition/{entry_id}", response_model=QueuedResponse)
async def process_with_nutrition_builder(entry_id: uuid.UUID, service: Analysis) -> QueuedResponse:
    return await _execute_builder(service.create_builder().nutrition(), entry_id, "Nutrition")


@router.post("/analysis/builder/custom/{entry_id}", response_model=QueuedResponse)
async def process_with_custom_builder(
    entry_id: uuid.UUID, body: CustomAnalysisRequest, service: Analysis
) -> QueuedResponse:
    builder = service.create_builder().custom(
        include_mood=body.include_mood,
        include_energy=body.include_energy,
        include_nutrition=body.include_nutrition,
        include_triggers=body.include_triggers,
    )
    return await _execute_builder(builder, entry_id, "Custom")
