"""Structured logging with structlog.

Every log line carries the request id and, once known, the profile and the
provider event being processed (bound through contextvars). Credentials that
could end up in an event dict are replaced before rendering.
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, Processor

APP_NAME = "subscription-sync"

# Keys whose values must never reach the log sink
SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "stripe_signature",
        "webhook_secret",
        "api_key",
        "token",
    }
)
REDACTED = "[redacted]"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = APP_NAME
    return event_dict


def redact_sensitive(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace values of sensitive keys with a fixed marker."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def _renderer(json_format: bool) -> Processor:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    include_timestamp: bool = True,
) -> None:
    """Configure structlog on top of the standard library logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; the stdlib level filters
        json_format: JSON lines if True, colored console output otherwise
        include_timestamp: Add UTC ISO8601 timestamps
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        redact_sensitive,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors.append(_renderer(json_format))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_env() -> None:
    """Configure from LOG_LEVEL and LOG_FORMAT (json or console)."""
    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=os.getenv("LOG_FORMAT", "json").lower() == "json",
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind values included in every later log line of this request or task.

    Example:
        bind_context(event_id="evt_1NqX", event_type="invoice.paid")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
