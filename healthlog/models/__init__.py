from healthlog.models.analysis_job import AnalysisJobRecord, AnalysisStatus, AnalysisType
from healthlog.models.base import Base
from healthlog.models.journal_entry import EntryType, JournalEntry
from healthlog.models.queue_job import QueueJob, QueueJobState

__all__ = [
    "Base",
    "JournalEntry",
    "EntryType",
    "AnalysisJobRecord",
    "AnalysisType",
    "AnalysisStatus",
    "QueueJob",
    "QueueJobState",
]
