"""Queue job model - the analysis queue's own bookkeeping table."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Enum, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healthlog.core.datetime_utils import utc_now
from healthlog.models.base import Base


class QueueJobState(str, enum.Enum):
    """Delivery state of a queued job."""

    DELAYED = "delayed"
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueJob(Base):
    """One message in the analysis queue."""

    __tablename__ = "queue_jobs"
    __table_args__ = (
        Index("ix_queue_jobs_dispatch", "queue_name", "state", "priority", "available_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    queue_name: Mapped[str] = mapped_column(String(100), index=True)
    name: Mapped[str] = mapped_column(String(100))
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    state: Mapped[QueueJobState] = mapped_column(
        Enum(
            QueueJobState,
            values_callable=lambda e: [x.value for x in e],
            name="queuejobstate",
            native_enum=False,
        ),
        default=QueueJobState.WAITING,
    )

    # Delivery retry tracking
    attempts_made: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    backoff_delay_ms: Mapped[int] = mapped_column(Integer, default=2000)
    # Set when retry_all_failed resubmits the job; later deliveries are redeliveries
    resubmitted: Mapped[bool] = mapped_column(Boolean, default=False)
    failed_reason: Mapped[str | None] = mapped_column(Text)
    return_value: Mapped[dict | None] = mapped_column(JSON)

    # Lifecycle timestamps
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    available_at: Mapped[datetime] = mapped_column(default=utc_now)
    processed_at: Mapped[datetime | None]
    finished_at: Mapped[datetime | None]

    @property
    def is_redelivery(self) -> bool:
        """True for any delivery after the job's first one."""
        return self.attempts_made > 1 or self.resubmitted

    def __repr__(self) -> str:
        return f"<QueueJob {self.id} {self.name} state={self.state.value} prio={self.priority}>"
