"""Exception types raised by the analysis pipeline."""


class HealthlogError(Exception):
    """Base class for pipeline errors.

    `retryable` tells the worker pool whether another delivery of the same
    queue job could succeed.
    """

    retryable = True


class EntryNotFoundError(HealthlogError):
    """Raised when a journal entry does not exist."""

    retryable = False

    def __init__(self, entry_id: object) -> None:
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} not found")


class JobRecordNotFoundError(HealthlogError):
    """Raised when an analysis job record does not exist."""

    def __init__(self, record_id: object) -> None:
        self.record_id = record_id
        super().__init__(f"Analysis job record {record_id} not found")


class UnknownAnalysisTypeError(HealthlogError):
    """Raised for an analysis kind the executor has no handler for."""

    retryable = False

    def __init__(self, analysis_type: object) -> None:
        self.analysis_type = analysis_type
        super().__init__(f"Unknown analysis type: {analysis_type}")


class TranscriptionError(HealthlogError):
    """Raised when an audio entry cannot be transcribed."""


class BuilderSpentError(HealthlogError):
    """Raised when an analysis builder is used after execution."""
