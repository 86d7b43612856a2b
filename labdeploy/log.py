"""Logging for provisioning runs.

Progress for the operator goes to the rich console; structured events go
through structlog to the ``labdeploy`` logger, which writes the run
transcript.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict

from .constants import APP_NAME

__all__ = ["configure_logging", "redact_secrets", "transcript"]

REDACTED = "[redacted]"
SECRET_KEYS = frozenset(
    {"api_key", "credential", "mcpapikey", "password", "secret", "token"}
)


def redact_secrets(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Blank out values whose key names a secret.

    Intended for use as a structlog processor, ahead of the renderer.
    """
    for key in list(event_dict):
        if key.lower() in SECRET_KEYS:
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(*, debug: bool = False) -> None:
    """Configure structlog on top of the ``labdeploy`` stdlib logger.

    Without debugging, events are INFO-level JSON; with debugging they are
    DEBUG-level key-value text, also echoed to stderr.

    Parameters
    ----------
    debug
        Enable debugging?  See above for effect.
    """
    logger = logging.getLogger(APP_NAME)
    logger.handlers = []
    logger.propagate = False
    logger.setLevel("DEBUG" if debug else "INFO")
    if debug:
        stream_handler = logging.StreamHandler(stream=sys.stderr)
        stream_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(stream_handler)
    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@contextmanager
def transcript(path: Path) -> Iterator[Path]:
    """Write every ``labdeploy`` log record to ``path`` for the duration.

    The handler is flushed, closed and detached on every exit path, including
    ``KeyboardInterrupt``, so a partial transcript stays readable.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger(APP_NAME)
    logger.addHandler(handler)
    try:
        yield path
    finally:
        handler.flush()
        logger.removeHandler(handler)
        handler.close()
