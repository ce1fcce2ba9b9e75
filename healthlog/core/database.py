import ssl
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from healthlog.config import Settings
from healthlog.core.logging import get_logger

logger = get_logger(__name__)


def _fix_database_url(url: str) -> tuple[str, dict]:
    """
    Fix a hosted Postgres connection URL for asyncpg compatibility.

    Hosted providers include params like sslmode, channel_binding that asyncpg
    doesn't accept. We strip them and handle SSL via connect_args.

    - For remote hosts: Use SSL with default context
    - For local dev (localhost/127.0.0.1/db) and SQLite: No SSL
    """
    if url.startswith("sqlite"):
        return url, {}

    parsed = urlparse(url)
    params = parse_qs(parsed.query)

    # Remove unsupported asyncpg params
    unsupported = ["sslmode", "channel_binding", "options"]
    for param in unsupported:
        params.pop(param, None)

    new_query = urlencode(params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    hostname = parsed.hostname or ""
    is_local = hostname in ("localhost", "127.0.0.1", "db", "postgres")

    if is_local:
        return clean_url, {}
    else:
        ssl_context = ssl.create_default_context()
        return clean_url, {"ssl": ssl_context}


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    clean_url, connect_args = _fix_database_url(settings.database_url)
    if clean_url.startswith("sqlite"):
        return create_async_engine(clean_url, echo=settings.debug)

    return create_async_engine(
        clean_url,
        echo=settings.debug,
        pool_pre_ping=True,
        # Worker pool (5) plus API requests
        pool_size=10,
        max_overflow=10,
        pool_recycle=280,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to `engine`."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def check_connection(engine: AsyncEngine) -> None:
    """Run a trivial query to verify the database is reachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables."""
    from healthlog.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.bind(tables=sorted(Base.metadata.tables)).info("database_tables_ready")
