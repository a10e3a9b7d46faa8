"""structlog setup for logtail.

Tailed records are written to stdout by the CLI, so every log event goes to
stderr, either as one JSON object per line (``format = "json"``, the
default) or as coloured console output (``format = "text"``).

``configure_logging()`` runs once per CLI invocation.  It installs the
processor chain below and binds a fresh 8-character ``run_id`` that appears
on every event of that invocation:

  merge_contextvars  run_id and anything else bound with bind_contextvars
  add_log_level      level="info", "warning", ...
  TimeStamper        ISO-8601 UTC timestamp
  format_exc_info    traceback text for ``log.exception(...)`` (json only)
  JSONRenderer / ConsoleRenderer

Modules log through ``get_logger(__name__)``::

    log = get_logger(__name__)
    log.info("file opened", path="/var/log/lis/LIS-001.XML")
    # {"path": "/var/log/lis/LIS-001.XML", "event": "file opened",
    #  "run_id": "a3f7b29c", "level": "info", "timestamp": "..."}

The tail loop runs on a worker thread.  The engine starts that thread inside
a copy of the caller's context, so worker events carry the same run_id.
"""

import logging as _stdlib
import sys
import uuid

import structlog

from logtail.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> str:
    """Install the processor chain and bind a new run_id, which is returned.

    Safe to call more than once; each call replaces the previous setup.

    Args:
        settings: Pre-loaded settings; loads from ``get_settings()`` if None.

    Returns:
        The 8-character hex run_id.
    """
    if settings is None:
        settings = get_settings()

    level_int = getattr(_stdlib, settings.logging.level, _stdlib.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.logging.format == "json":
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[*shared_processors, *renderers],
        wrapper_class=structlog.make_filtering_bound_logger(level_int),
        context_class=dict,
        # Uncached, so module-level loggers pick up every later call here
        # (each CLI invocation, each test) and its current sys.stderr.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    run_id = uuid.uuid4().hex[:8]
    structlog.contextvars.bind_contextvars(run_id=run_id)

    return run_id


def get_logger(name: str = "logtail") -> structlog.BoundLogger:
    """Return a structlog logger named *name* (usually the caller's ``__name__``)."""
    return structlog.get_logger(name)
