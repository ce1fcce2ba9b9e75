"""
Pytest configuration and fixtures for healthlog tests.

Provides:
- Async test database with SQLite
- A pipeline wired with fake executor and transcriber
- Test client for API testing
- Factory fixtures for creating test data
"""

import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from healthlog.config import AppConfig, QueueConfig, Settings, WorkerConfig
from healthlog.core.database import create_session_factory
from healthlog.models import Base
from healthlog.models.analysis_job import AnalysisType
from healthlog.models.journal_entry import EntryType, JournalEntry
from healthlog.pipeline import AnalysisPipeline
from healthlog.schemas.queue import QueueJobData


class TestSettings(Settings):
    database_url: str = "sqlite+aiosqlite:///:memory:"
    debug: bool = True
    openai_api_key: str = "test-key"
    worker_enabled: bool = False
    scheduler_enabled: bool = False


class TestConfig(AppConfig):
    """AppConfig that ignores config.yml; jobs run without delay or backoff by default."""

    def __init__(self, queue: dict | None = None, worker: dict | None = None) -> None:
        self.settings = TestSettings()
        self.queue = QueueConfig({"delay_ms": 0, "backoff_delay_ms": 0, **(queue or {})})
        self.worker = WorkerConfig({"poll_interval_seconds": 0.01, **(worker or {})})


class FakeExecutor:
    """Stands in for the LLM executor; fails the first `fail_times` calls."""

    def __init__(self, fail_times: int = 0, error: Exception | None = None) -> None:
        self.fail_times = fail_times
        self.error = error or RuntimeError("model unavailable")
        self.calls: list[tuple[AnalysisType, str, uuid.UUID | None]] = []

    async def analyze(
        self,
        analysis_type: AnalysisType,
        content: str,
        journal_entry_id: uuid.UUID | None = None,
    ) -> dict:
        self.calls.append((AnalysisType(analysis_type), content, journal_entry_id))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        return {"analysisType": AnalysisType(analysis_type).value, "confidence": 0.9}


class FakeTranscriber:
    def __init__(self, text: str = "Slept badly, feeling drained.", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[str] = []

    async def transcribe_url(self, audio_url: str) -> str:
        self.calls.append(audio_url)
        if self.error is not None:
            raise self.error
        return self.text


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent workers get their own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


# ============================================================================
# Pipeline
# ============================================================================


@pytest.fixture
def test_config() -> TestConfig:
    return TestConfig()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest_asyncio.fixture
async def pipeline(
    test_config, session_factory, fake_executor, fake_transcriber
) -> AsyncGenerator[AnalysisPipeline, None]:
    pipeline = AnalysisPipeline(
        test_config,
        session_factory,
        executor=fake_executor,
        transcriber=fake_transcriber,
    )
    yield pipeline
    await pipeline.stop()


@pytest_asyncio.fixture
async def client(pipeline: AnalysisPipeline) -> AsyncGenerator[AsyncClient, None]:
    """Async test client; the lifespan is bypassed and the test pipeline installed."""
    from healthlog.main import app

    app.state.pipeline = pipeline
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.pipeline


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest.fixture
def entry_factory(session_factory):
    """Factory for creating journal entries."""

    async def _create_entry(
        content: str = "Great run this morning, feeling energetic.",
        type: EntryType = EntryType.TEXT,
        audio_url: str | None = None,
        is_draft: bool = False,
        is_deleted: bool = False,
    ) -> JournalEntry:
        entry = JournalEntry(
            content=content,
            type=type,
            audio_url=audio_url,
            is_draft=is_draft,
            is_deleted=is_deleted,
        )
        async with session_factory() as db:
            db.add(entry)
            await db.commit()
        return entry

    return _create_entry


@pytest.fixture
def make_job_data():
    """Factory for queue payloads; no entry row is needed by the queue itself."""

    def _make(
        analysis_type: AnalysisType = AnalysisType.MOOD,
        journal_entry_id: uuid.UUID | None = None,
        content: str = "Some journal text",
    ) -> QueueJobData:
        return QueueJobData(
            journal_entry_id=journal_entry_id or uuid.uuid4(),
            analysis_type=analysis_type,
            content=content,
        )

    return _make
