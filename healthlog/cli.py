"""
healthlog CLI - run the analysis worker and manage the queue.

Usage:
    healthlog --help                  Show all commands
    healthlog init-db                 Create missing tables
    healthlog worker                  Run the worker pool until interrupted
    healthlog worker --drain          Process available jobs, then exit
    healthlog analyze <entry-id>      Queue analyses for one entry
    healthlog reprocess mood          Queue one kind for every published entry
    healthlog status                  Show queue job counts
    healthlog retry-failed            Resubmit failed queue jobs
    healthlog clean                   Remove old finished queue jobs
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from healthlog.models.analysis_job import AnalysisType

app = typer.Typer(
    name="healthlog",
    help="healthlog CLI - journal analysis pipeline",
    no_args_is_help=True,
)

T = TypeVar("T")


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


def _run_with_pipeline(fn: Callable[..., Awaitable[T]]) -> T:
    """Build a pipeline, run `fn(pipeline)`, and always shut it down."""
    from healthlog.core.logging import setup_logging
    from healthlog.pipeline import AnalysisPipeline

    setup_logging()

    async def run() -> T:
        pipeline = AnalysisPipeline.from_config()
        await pipeline.start(workers=False, scheduler=False)
        try:
            return await fn(pipeline)
        finally:
            await pipeline.stop()

    return asyncio.run(run())


@app.command("init-db")
def init_db():
    """Create any missing database tables."""
    from healthlog.core.database import init_models

    _run_with_pipeline(lambda p: init_models(p.engine))
    _print_success("Tables ready")


@app.command()
def worker(
    drain: bool = typer.Option(False, "--drain", help="Process available jobs, then exit"),
):
    """Run the analysis worker pool."""

    async def run(pipeline) -> None:
        if drain:
            processed = await pipeline.workers.drain()
            _print_success(f"Processed {processed} jobs")
            return

        await pipeline.workers.start()
        await pipeline.scheduler.start()
        typer.echo(f"Worker pool running (concurrency={pipeline.workers.concurrency}). Ctrl+C to stop.")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            typer.echo("Stopping, waiting for in-flight jobs...")

    try:
        _run_with_pipeline(run)
    except KeyboardInterrupt:
        pass


@app.command()
def analyze(
    entry_id: uuid.UUID = typer.Argument(..., help="Journal entry id"),
    analysis_types: list[AnalysisType] = typer.Option(
        [AnalysisType.MOOD, AnalysisType.ENERGY],
        "--type",
        "-t",
        help="Analysis kind to queue (repeatable)",
    ),
):
    """Queue analyses for one entry."""
    from healthlog.core.errors import EntryNotFoundError

    try:
        jobs = _run_with_pipeline(
            lambda p: p.service.queue_analysis_for_entry(entry_id, analysis_types)
        )
    except EntryNotFoundError as e:
        _print_error(str(e))
        raise typer.Exit(1)

    _print_success(f"Queued {len(jobs)} jobs: {', '.join(j.analysis_type.value for j in jobs)}")


@app.command()
def reprocess(
    analysis_type: AnalysisType = typer.Argument(..., help="Analysis kind to rerun"),
):
    """Queue one analysis kind for every published entry."""
    queued = _run_with_pipeline(lambda p: p.service.reprocess_all_entries(analysis_type))
    _print_success(f"Queued {queued} {analysis_type.value} jobs")


@app.command()
def status():
    """Show queue job counts."""
    counts = _run_with_pipeline(lambda p: p.queue.counts())
    typer.echo(f"waiting={counts.waiting} active={counts.active} completed={counts.completed} failed={counts.failed}")


@app.command("retry-failed")
def retry_failed():
    """Resubmit every failed queue job."""
    count = _run_with_pipeline(lambda p: p.queue.retry_all_failed())
    _print_success(f"Retried {count} failed jobs")


@app.command()
def clean(
    max_age_hours: int | None = typer.Option(None, "--max-age-hours", help="Override configured age"),
    keep: int | None = typer.Option(None, "--keep", help="Override configured keep count"),
):
    """Remove finished queue jobs older than the configured age."""

    async def run(pipeline) -> int:
        queue_config = pipeline.config.queue
        hours = max_age_hours if max_age_hours is not None else queue_config.clean_max_age_hours
        keep_count = keep if keep is not None else queue_config.clean_keep
        return await pipeline.queue.clean(hours * 60 * 60 * 1000, keep_count)

    removed = _run_with_pipeline(run)
    _print_success(f"Removed {removed} queue jobs")


if __name__ == "__main__":
    app()
