"""
Observability Module.

Structured logging with JSON output, bound context and secret redaction.
"""

from src.observability.logging import (
    LogContext,
    configure_from_settings,
    configure_logging,
    get_logger,
    redact_database_url,
    unit_of_work,
)

__all__ = [
    # Configuration
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    # Context
    "LogContext",
    "unit_of_work",
    "redact_database_url",
]
