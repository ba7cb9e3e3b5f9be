"""Observability module for cronmutex.

Provides level-gated diagnostic logging on stderr:
- Console or JSON structured output
- Mutex name and invocation ID context
"""

from cronmutex.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    get_logger,
    invocation_id_var,
    mutex_var,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "JsonFormatter",
    "ConsoleFormatter",
    "mutex_var",
    "invocation_id_var",
]
