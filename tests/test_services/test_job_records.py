"""Tests for job record persistence."""

import uuid

import pytest

from healthlog.core.errors import JobRecordNotFoundError
from healthlog.models.analysis_job import AnalysisStatus, AnalysisType
from healthlog.services.job_records import JobRecordStore

pytestmark = pytest.mark.asyncio


@pytest.fixture
def records(session_factory) -> JobRecordStore:
    return JobRecordStore(session_factory)


class TestBeginProcessing:
    """Tests for create-or-reuse."""

    async def test_creates_processing_record(self, records, entry_factory):
        entry = await entry_factory()

        record = await records.begin_processing(entry.id, AnalysisType.MOOD)

        assert record.status == AnalysisStatus.PROCESSING
        assert record.retry_count == 0
        assert record.error_message is None

    async def test_reuse_clears_error_and_counts_retry(self, records, entry_factory):
        entry = await entry_factory()
        first = await records.begin_processing(entry.id, AnalysisType.MOOD)
        await records.mark_failed(first.id, "rate limited")

        second = await records.begin_processing(entry.id, AnalysisType.MOOD)

        assert second.id == first.id
        assert second.status == AnalysisStatus.PROCESSING
        assert second.error_message is None
        assert second.retry_count == 1

    async def test_reuse_without_counting_retry(self, records, entry_factory):
        """A redelivered job resets the record but leaves retry_count alone."""
        entry = await entry_factory()
        first = await records.begin_processing(entry.id, AnalysisType.MOOD)
        await records.mark_failed(first.id, "rate limited")

        second = await records.begin_processing(entry.id, AnalysisType.MOOD, count_retry=False)

        assert second.id == first.id
        assert second.status == AnalysisStatus.PROCESSING
        assert second.error_message is None
        assert second.retry_count == 0

    async def test_kinds_get_separate_records(self, records, entry_factory):
        entry = await entry_factory()

        mood = await records.begin_processing(entry.id, AnalysisType.MOOD)
        energy = await records.begin_processing(entry.id, AnalysisType.ENERGY)

        assert mood.id != energy.id
        assert len(await records.list_for_entry(entry.id)) == 2


class TestOutcomes:
    """Tests for completing and failing records."""

    async def test_mark_completed(self, records, entry_factory):
        entry = await entry_factory()
        record = await records.begin_processing(entry.id, AnalysisType.ENERGY)

        await records.mark_completed(record.id, {"energyLevel": 4, "confidence": 0.7})
        stored = await records.get(record.id)

        assert stored.status == AnalysisStatus.COMPLETED
        assert stored.result == {"energyLevel": 4, "confidence": 0.7}

    async def test_mark_failed(self, records, entry_factory):
        entry = await entry_factory()
        record = await records.begin_processing(entry.id, AnalysisType.ENERGY)

        await records.mark_failed(record.id, "timeout")
        stored = await records.get(record.id)

        assert stored.status == AnalysisStatus.FAILED
        assert stored.error_message == "timeout"

    async def test_unknown_record(self, records):
        with pytest.raises(JobRecordNotFoundError):
            await records.get(uuid.uuid4())
        with pytest.raises(JobRecordNotFoundError):
            await records.mark_completed(uuid.uuid4(), {})


class TestQueries:
    """Tests for listing records."""

    async def test_list_by_status_and_type(self, records, entry_factory):
        entry = await entry_factory()
        mood = await records.begin_processing(entry.id, AnalysisType.MOOD)
        energy = await records.begin_processing(entry.id, AnalysisType.ENERGY)
        await records.mark_completed(mood.id, {})
        await records.mark_completed(energy.id, {})
        await records.begin_processing(entry.id, AnalysisType.TRIGGERS)

        completed = await records.list_by_status(AnalysisStatus.COMPLETED)
        completed_mood = await records.list_by_status(
            AnalysisStatus.COMPLETED, analysis_type=AnalysisType.MOOD
        )
        processing = await records.list_by_status(AnalysisStatus.PROCESSING)

        assert len(completed) == 2
        assert [r.id for r in completed_mood] == [mood.id]
        assert [r.analysis_type for r in processing] == [AnalysisType.TRIGGERS]

    async def test_find_missing(self, records):
        assert await records.find(uuid.uuid4(), AnalysisType.MOOD) is None
