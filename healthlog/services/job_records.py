"""
Persistence for analysis job records.

A record holds the latest outcome for one (entry, kind) pair. Starting an
analysis reuses the existing record when there is one, so repeated runs never
create duplicates; each explicit re-run increments `retry_count`.
"""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthlog.core.errors import JobRecordNotFoundError
from healthlog.core.logging import get_logger
from healthlog.models.analysis_job import AnalysisJobRecord, AnalysisStatus, AnalysisType

logger = get_logger(__name__)


class JobRecordStore:
    """CRUD and queries over AnalysisJobRecord."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, record_id: uuid.UUID) -> AnalysisJobRecord:
        async with self._session_factory() as db:
            record = await db.get(AnalysisJobRecord, record_id)
        if record is None:
            raise JobRecordNotFoundError(record_id)
        return record

    async def find(
        self, journal_entry_id: uuid.UUID, analysis_type: AnalysisType
    ) -> AnalysisJobRecord | None:
        async with self._session_factory() as db:
            return await self._find(db, journal_entry_id, analysis_type)

    async def _find(
        self, db: AsyncSession, journal_entry_id: uuid.UUID, analysis_type: AnalysisType
    ) -> AnalysisJobRecord | None:
        result = await db.execute(
            select(AnalysisJobRecord).where(
                AnalysisJobRecord.journal_entry_id == journal_entry_id,
                AnalysisJobRecord.analysis_type == analysis_type,
            )
        )
        return result.scalar_one_or_none()

    async def begin_processing(
        self,
        journal_entry_id: uuid.UUID,
        analysis_type: AnalysisType,
        count_retry: bool = True,
    ) -> AnalysisJobRecord:
        """
        Create or reuse the record for (entry, kind) and mark it processing.

        A new record starts at retry_count 0. An existing record has its error
        cleared, and retry_count incremented when `count_retry` is set.
        """
        async with self._session_factory() as db:
            record = await self._find(db, journal_entry_id, analysis_type)
            if record is None:
                record = AnalysisJobRecord(
                    journal_entry_id=journal_entry_id,
                    analysis_type=analysis_type,
                    status=AnalysisStatus.PROCESSING,
                    retry_count=0,
                )
                db.add(record)
                try:
                    await db.commit()
                    return record
                except IntegrityError:
                    # Another job created it first; reuse theirs
                    await db.rollback()
                    record = await self._find(db, journal_entry_id, analysis_type)
                    if record is None:
                        raise

            record.status = AnalysisStatus.PROCESSING
            record.error_message = None
            if count_retry:
                record.retry_count += 1
            await db.commit()
            return record

    async def mark_completed(self, record_id: uuid.UUID, result: dict[str, Any]) -> AnalysisJobRecord:
        async with self._session_factory() as db:
            record = await db.get(AnalysisJobRecord, record_id)
            if record is None:
                raise JobRecordNotFoundError(record_id)
            record.status = AnalysisStatus.COMPLETED
            record.result = result
            record.error_message = None
            await db.commit()
            return record

    async def mark_failed(self, record_id: uuid.UUID, error_message: str) -> AnalysisJobRecord:
        async with self._session_factory() as db:
            record = await db.get(AnalysisJobRecord, record_id)
            if record is None:
                raise JobRecordNotFoundError(record_id)
            record.status = AnalysisStatus.FAILED
            record.error_message = error_message
            await db.commit()
            return record

    async def list_for_entry(self, journal_entry_id: uuid.UUID) -> list[AnalysisJobRecord]:
        """All records of an entry, newest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(AnalysisJobRecord)
                .where(AnalysisJobRecord.journal_entry_id == journal_entry_id)
                .order_by(AnalysisJobRecord.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_by_status(
        self,
        status: AnalysisStatus,
        analysis_type: AnalysisType | None = None,
    ) -> list[AnalysisJobRecord]:
        """Records in `status`, optionally of one kind, newest first."""
        query = select(AnalysisJobRecord).where(AnalysisJobRecord.status == status)
        if analysis_type is not None:
            query = query.where(AnalysisJobRecord.analysis_type == analysis_type)
        query = query.order_by(AnalysisJobRecord.created_at.desc())

        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())
