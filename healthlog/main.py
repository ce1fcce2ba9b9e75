from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from healthlog import __version__
from healthlog.api.router import api_router
from healthlog.config import get_config, get_settings
from healthlog.core.logging import setup_logging
from healthlog.pipeline import AnalysisPipeline

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging()
    pipeline = AnalysisPipeline.from_config(get_config())
    app.state.pipeline = pipeline
    await pipeline.start(
        workers=settings.worker_enabled,
        scheduler=settings.scheduler_enabled,
    )
    yield
    await pipeline.stop()


app = FastAPI(
    title="healthlog",
    description="Journal analysis job pipeline",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.include_router(api_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}
