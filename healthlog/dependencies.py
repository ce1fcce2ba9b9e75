from typing import Annotated

from fastapi import Depends, Request

from healthlog.pipeline import AnalysisPipeline
from healthlog.queue.job_queue import JobQueue
from healthlog.services.analysis import AnalysisService


def get_pipeline(request: Request) -> AnalysisPipeline:
    """The pipeline built by the application lifespan."""
    pipeline: AnalysisPipeline = request.app.state.pipeline
    return pipeline


Pipeline = Annotated[AnalysisPipeline, Depends(get_pipeline)]


def get_analysis_service(pipeline: Pipeline) -> AnalysisService:
    return pipeline.service


def get_job_queue(pipeline: Pipeline) -> JobQueue:
    return pipeline.queue


# Type aliases for dependency injection
Analysis = Annotated[AnalysisService, Depends(get_analysis_service)]
Queue = Annotated[JobQueue, Depends(get_job_queue)]
