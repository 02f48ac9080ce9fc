"""Structured logging for flowbridge.

Library modules only ask for loggers; the CLI (or an embedding application)
calls ``configure_logging`` once. Every record goes to a single stderr
handler, rendered for humans by default or as JSON lines when
``FLOWBRIDGE_LOG_FORMAT=json``. Expression texts in log fields are clipped so
a 10 000 character expression cannot flood the log.

Usage:
    from flowbridge.logging import get_logger, configure_logging

    configure_logging()

    log = get_logger(__name__)
    log.warning("expression_needs_review", path="url", node="HTTP Request")
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from flowbridge.constants import LOG_EXPRESSION_MAX_CHARS

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
]

LOG_FORMAT_ENV_VAR = "FLOWBRIDGE_LOG_FORMAT"

LOG_LEVEL_ENV_VAR = "FLOWBRIDGE_LOG_LEVEL"

# Event fields holding expression text
_EXPRESSION_FIELDS = ("expression", "result")


def _level_from_env() -> int:
    """Read FLOWBRIDGE_LOG_LEVEL; unknown names mean INFO."""
    name = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _json_requested() -> bool:
    return os.environ.get(LOG_FORMAT_ENV_VAR, "").strip().lower() == "json"


def clip_expressions(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> EventDict:
    """Shorten long expression texts in an event."""
    for key in _EXPRESSION_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > LOG_EXPRESSION_MAX_CHARS:
            hidden = len(value) - LOG_EXPRESSION_MAX_CHARS
            event_dict[key] = (
                f"{value[:LOG_EXPRESSION_MAX_CHARS]}... ({hidden} more chars)"
            )
    return event_dict


def _pre_chain() -> list[Processor]:
    # Runs for structlog events and for records from plain stdlib loggers
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        clip_expressions,
    ]


def _render_chain(use_json: bool) -> list[Processor]:
    if use_json:
        return [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def configure_logging(
    *,
    force_json: bool = False,
    level: int | None = None,
) -> None:
    """Route structlog and stdlib logging to one stderr handler.

    Safe to call again; the previous handler is replaced.

    Args:
        force_json: Render JSON lines whatever FLOWBRIDGE_LOG_FORMAT says.
        level: Minimum level. If None, reads FLOWBRIDGE_LOG_LEVEL.
    """
    use_json = force_json or _json_requested()
    log_level = _level_from_env() if level is None else level

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=_render_chain(use_json),
            foreign_pre_chain=_pre_chain(),
        )
    )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(log_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually ``get_logger(__name__)``."""
    log: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return log


def bind_context(**context: Any) -> None:
    """Attach fields to every following event in this context.

    Example:
        bind_context(params_file="node.json")
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
