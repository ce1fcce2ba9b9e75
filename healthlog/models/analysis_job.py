"""Analysis job record model.

One row per (journal entry, analysis kind) holding the latest outcome.
Re-running an analysis updates the row in place, so only the most recent
result per kind is kept.
"""

import enum
import uuid

from sqlalchemy import JSON, Enum, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healthlog.models.base import Base, TimestampMixin


class AnalysisType(str, enum.Enum):
    """Kinds of structured extraction run over journal text."""

    MOOD = "mood"
    ENERGY = "energy"
    NUTRITION = "nutrition"
    TRIGGERS = "triggers"


class AnalysisStatus(str, enum.Enum):
    """Job record lifecycle.

    PENDING is reserved: records are created directly in PROCESSING.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisJobRecord(Base, TimestampMixin):
    """Latest analysis outcome for one entry and kind."""

    __tablename__ = "analysis_results"
    __table_args__ = (
        UniqueConstraint("journal_entry_id", "analysis_type", name="uq_analysis_entry_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("journal_entries.id", ondelete="CASCADE"), index=True
    )
    analysis_type: Mapped[AnalysisType] = mapped_column(
        Enum(
            AnalysisType,
            values_callable=lambda e: [x.value for x in e],
            name="analysistype",
            native_enum=False,
        ),
        index=True,
    )
    status: Mapped[AnalysisStatus] = mapped_column(
        Enum(
            AnalysisStatus,
            values_callable=lambda e: [x.value for x in e],
            name="analysisstatus",
            native_enum=False,
        ),
        default=AnalysisStatus.PENDING,
        index=True,
    )
    result: Mapped[dict | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return (
            f"<AnalysisJobRecord {self.journal_entry_id} "
            f"{self.analysis_type.value} status={self.status.value}>"
        )
