"""Journal entry model.

Entries are owned by the entry-management side of the application; the
analysis pipeline only reads them and writes back transcribed content.
"""

import enum
import uuid

from sqlalchemy import Boolean, Enum, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healthlog.models.base import Base, TimestampMixin


class EntryType(str, enum.Enum):
    """How the entry was captured."""

    TEXT = "text"
    AUDIO = "audio"


class JournalEntry(Base, TimestampMixin):
    """A user's journal entry."""

    __tablename__ = "journal_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content: Mapped[str] = mapped_column(Text, default="")
    type: Mapped[EntryType] = mapped_column(
        Enum(
            EntryType,
            values_callable=lambda e: [x.value for x in e],
            name="entrytype",
            native_enum=False,
        ),
        default=EntryType.TEXT,
    )
    audio_url: Mapped[str | None] = mapped_column(String(1024))
    duration: Mapped[int | None] = mapped_column(Integer)
    is_draft: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    @property
    def needs_transcription(self) -> bool:
        """Audio entry whose text has not been produced yet."""
        return (
            self.type == EntryType.AUDIO
            and not (self.content or "").strip()
            and bool(self.audio_url)
        )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} type={self.type.value}>"
