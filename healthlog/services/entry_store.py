"""Read/write access to journal entries needed by the analysis pipeline."""

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthlog.core.datetime_utils import utc_now
from healthlog.core.logging import get_logger
from healthlog.models.journal_entry import JournalEntry

logger = get_logger(__name__)


class EntryStore:
    """Journal entry lookups plus the one write the pipeline performs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, entry_id: uuid.UUID) -> JournalEntry | None:
        async with self._session_factory() as db:
            return await db.get(JournalEntry, entry_id)

    async def update_content(self, entry_id: uuid.UUID, content: str) -> None:
        """Persist transcribed text onto an entry."""
        async with self._session_factory() as db:
            await db.execute(
                update(JournalEntry)
                .where(JournalEntry.id == entry_id)
                .values(content=content, updated_at=utc_now())
            )
            await db.commit()

        logger.bind(entry_id=str(entry_id), length=len(content)).info("entry_content_updated")

    async def list_active(self) -> list[JournalEntry]:
        """Published entries: not drafts and not deleted."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(JournalEntry)
                .where(JournalEntry.is_deleted.is_(False), JournalEntry.is_draft.is_(False))
                .order_by(JournalEntry.created_at.asc())
            )
            return list(result.scalars().all())
