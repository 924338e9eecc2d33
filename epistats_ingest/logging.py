"""Run log configuration: structlog events routed through the stdlib root logger."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

# Libraries whose INFO chatter would otherwise leak request URLs into the run log.
_QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    *,
    json: bool = True,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Install one handler on the root logger for an ingestion run.

    Every event (``imap_connected``, ``worksheet_processed``, ...) is
    stamped with level, logger name and an ISO timestamp, then rendered
    as a JSON line for scheduled runs, or with structlog's console
    renderer when *json* is false.  *level* is a case-insensitive level
    name.  Lines go to *stream*, ``sys.stderr`` unless given, keeping
    them apart from anything the process prints on stdout.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False,
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
