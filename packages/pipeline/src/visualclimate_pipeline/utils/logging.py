"""
utils/logging.py — structlog configuration for the pipeline.

Sets up structured logging with JSON or human-readable console output
controlled by Settings.log_format. Call configure_logging() once at
process startup (done automatically by the CLI).

Usage:
    from visualclimate_pipeline.utils.logging import configure_logging, get_logger

    configure_logging(settings)
    log = get_logger("visualclimate_pipeline.sources.worldbank")
    log.info("page_fetched", indicator="SP.POP.TOTL", page=1, pages=4)

    # Bind job-wide context for all subsequent log calls:
    log = log.bind(job="worldbank")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from visualclimate_shared.config import Settings

# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def configure_logging(
    settings: Settings | None = None,
    *,
    log_level: str | None = None,
    log_format: str | None = None,
) -> None:
    """
    Configure structlog for the pipeline process.

    Should be called once at startup. Idempotent.

    Args:
        settings:   Source of log_level / log_format defaults.
        log_level:  Override ("DEBUG", "INFO", …).
        log_format: Override ("json" | "console").
    """
    level = log_level or (settings.log_level if settings else "INFO")
    fmt = log_format or (settings.log_format if settings else "console")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """
    Return a bound structlog logger with optional initial context values.

    Args:
        name:             Logger name (conventionally the module __name__).
        **initial_values: Key-value pairs merged into every log record.
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger  # type: ignore[return-value]
