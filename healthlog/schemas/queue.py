import uuid

from pydantic import BaseModel

from healthlog.models.analysis_job import AnalysisType


class QueueJobData(BaseModel):
    """
    Message payload handed to a worker.

    `content` and `audio_url` are a snapshot taken at enqueue time.
    """

    journal_entry_id: uuid.UUID
    analysis_type: AnalysisType
    content: str = ""
    audio_url: str | None = None


class JobCounts(BaseModel):
    """Number of queue jobs in each delivery state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed
