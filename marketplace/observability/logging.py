"""
Structured Logging with Structlog.

JSON (or console) event logs carrying order, reseller and job context.
Delivered stock lines are customer credentials: they never reach a log line.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from marketplace.config import settings

# Keys whose values are replaced before rendering
REDACTED_KEYS = frozenset(
    {
        "delivered_content",
        "stock",
        "password",
        "token",
        "secret",
        "authorization",
        "pix_key",
    }
)
REDACTED = "[redacted]"

# Libraries that log full request URLs at INFO
_QUIET_LOGGERS = ("httpx", "httpcore")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service name and version to every entry."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_sensitive(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in event_dict.keys() & REDACTED_KEYS:
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and route stdlib logging to stdout.

    A JSON entry looks like:
    {
        "event": "order_fulfilled",
        "level": "info",
        "timestamp": "2026-01-08T12:00:00.123456Z",
        "logger": "marketplace.services.fulfillment",
        "service": "digital-marketplace-api",
        "order_id": 42,
        "source": "webhook"
    }
    """
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("order_fulfilled", order_id=order_id, source="webhook")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind context variables for every log line inside the block.

    Usage:
        with log_context(job="payment_poll", order_id=42):
            logger.info("checking_payment")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)
