"""
structlog setup for applications embedding kernel_aa.

The package itself logs through ``logging.getLogger(__name__)``; calling
``setup_logging`` routes those records through structlog so they come out
as JSON lines (or a console view at DEBUG) carrying any bound UserOperation
context.
"""

import logging
import sys
from contextlib import contextmanager
from typing import IO, Iterator, Optional

import structlog


NOISY_LOGGERS = ("httpcore", "httpx")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(
    log_level: str = "INFO",
    json_logs: Optional[bool] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Install a structlog-backed handler on the root logger.

    Args:
        log_level: Level name, usually ``Settings.log_level``. Unknown names
            fall back to INFO.
        json_logs: Force JSON (True) or console (False) output. By default
            DEBUG gets the console renderer and everything else JSON.
        stream: Destination, stdout unless given.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    if json_logs is None:
        json_logs = level != logging.DEBUG

    shared = _shared_processors()
    if json_logs:
        shared.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain applies the shared processors to plain stdlib records
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def user_operation_context(**fields) -> Iterator[None]:
    """Bind ``fields`` (sender, user_op_hash, ...) to every log line inside the block."""
    tokens = structlog.contextvars.bind_contextvars(**fields)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
