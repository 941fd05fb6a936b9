"""
Structured Logging Configuration.

structlog setup for the record layer:
- JSON output for production, console output for development
- Context bound per unit of work and per bulk operation
- Database URL passwords and secret-looking keys redacted
"""

import logging
import sys
import uuid
from typing import Any, Literal

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from structlog.types import EventDict, WrappedLogger

from src.config.settings import Settings, get_settings

SENSITIVE_KEYS = frozenset({
    "password", "secret", "token", "authorization", "credential", "private_key",
})

REDACTED = "***REDACTED***"


class LogContext:
    """
    Bind key/value pairs to every log event emitted inside the block.

    Backed by ``structlog.contextvars``, so nested blocks stack and each
    one restores the previous bindings on exit.

    Usage:
        with LogContext(model="Subscription", operation="bulk_expire"):
            logger.info("Bulk update executed")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        structlog.contextvars.reset_contextvars(**self._tokens)
        return False


def unit_of_work(unit_id: str | None = None) -> LogContext:
    """Context tagging log events with the id of one session transaction."""
    return LogContext(unit_of_work=unit_id or uuid.uuid4().hex[:12])


def redact_database_url(value: str) -> str:
    """Database URL with its password masked; non-URLs are returned unchanged."""
    try:
        return make_url(value).render_as_string(hide_password=True)
    except ArgumentError:
        return value


def censor_sensitive_data(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask secret-looking keys and passwords embedded in database URLs."""

    def censor_value(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: censor_value(k, v) for k, v in value.items()}
        if not isinstance(value, str):
            return value
        lowered = key.lower()
        if any(s in lowered for s in SENSITIVE_KEYS):
            return REDACTED
        if lowered == "url" or lowered.endswith("_url"):
            return redact_database_url(value)
        return value

    for key in list(event_dict.keys()):
        event_dict[key] = censor_value(key, event_dict[key])

    return event_dict


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
    service_name: str = "record-expiration",
) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Output format ("json" for production, "console" for development)
        service_name: Service name bound to every log event
    """

    def add_service_info(
        logger: WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_info,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    # SQL echo is controlled by DATABASE_ECHO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def configure_from_settings(settings: Settings | None = None) -> None:
    """Configure logging from application settings."""
    settings = settings or get_settings()
    configure_logging(
        level=settings.log_level,
        format=settings.observability.log_format,
        service_name=settings.app_name.lower().replace(" ", "-"),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger; ``name`` is usually ``__name__``."""
    return structlog.get_logger(name)
