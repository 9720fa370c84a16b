"""structlog configuration shared by the CLI and library code."""

from __future__ import annotations

import logging
import re
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog

_SECRET_KEYS = frozenset({"api_key", "authorization", "password", "token", "secret"})
_INLINE_SECRET_RE = re.compile(
    r"(api_key|token|key|secret|password|authorization)[\"']?\s*[:=]\s*[\"']?[\w\-\.]+",
    re.IGNORECASE,
)

# Libraries that chat at INFO about every request
_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "aiosqlite", "asyncio")


def _redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_KEYS and value:
            event_dict[key] = "***REDACTED***"
        elif isinstance(value, str) and _INLINE_SECRET_RE.search(value):
            event_dict[key] = _INLINE_SECRET_RE.sub(r"\1=***REDACTED***", value)
    return event_dict


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Route structlog through stdlib logging to stderr.

    Step parameters and submitted input values are only logged at DEBUG.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            _redact_secrets,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    quiet_level = max(numeric_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def bind_session(session_id: str, **extra: object) -> Iterator[None]:
    """Attach ``session_id`` (and extras) to every log event inside the block."""
    with structlog.contextvars.bound_contextvars(session_id=session_id, **extra):
        yield
