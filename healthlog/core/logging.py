"""
Loguru setup for the API, the CLI and the worker process.

Pipeline code logs events through `get_logger(__name__).bind(...)`; records
from libraries that use stdlib logging are forwarded into the same sinks.
"""

import logging
import sys
from typing import Any

from loguru import logger

from healthlog.config import get_settings

# Libraries whose stdlib loggers are routed through loguru
FORWARDED_LOGGERS = (
    "uvicorn.error",
    "uvicorn.access",
    "sqlalchemy.engine",
    "aiosqlite",
    "asyncpg",
    "openai",
    "httpx",
    "apscheduler",
)

DEBUG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> | "
    "<level>{message}</level> | {extra}"
)
PLAIN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} | {message} | {extra}"


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _quiet_health_checks(record: dict[str, Any]) -> bool:
    """Drop access-log lines for /health polling unless they are DEBUG."""
    if "GET /health" in record["message"]:
        return record["level"].no <= logging.DEBUG
    return True


def setup_logging() -> None:
    """Install the stderr sink and forward library loggers into it."""
    settings = get_settings()

    logger.remove()
    logger.configure(extra={"name": "healthlog"})

    if settings.debug:
        logger.add(sys.stderr, level="DEBUG", format=DEBUG_FORMAT, backtrace=True, diagnose=True)
    else:
        logger.add(
            sys.stderr,
            level=settings.log_level.upper(),
            format=PLAIN_FORMAT,
            filter=_quiet_health_checks,
            backtrace=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in FORWARDED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False


def get_logger(name: str) -> Any:
    """Loguru logger tagged with the module name; add event fields with `.bind()`."""
    return logger.bind(name=name)
