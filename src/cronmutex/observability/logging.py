"""Diagnostic logging for cronmutex.

The gate is normally silent: it runs from cron and communicates only through
its exit status. Diagnostics go to stderr and are level-gated, so --verbose
turns on DEBUG without changing any decision.

Provides:
- JSON-formatted logs for log aggregation systems
- Human-readable console logs
- Mutex name and invocation ID propagation via context variables

Usage:
    from cronmutex.observability.logging import LogContext, configure_logging

    configure_logging(json_format=False, level="DEBUG")

    with LogContext(mutex="nightly-report", invocation_id="a1b2c3d4"):
        logger.debug("Acquiring lock")  # Includes mutex and invocation_id
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Context variables for invocation correlation
mutex_var: contextvars.ContextVar[str] = contextvars.ContextVar("mutex", default="")
invocation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "invocation_id", default=""
)

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "mutex": mutex_var,
    "invocation_id": invocation_id_var,
}

# Standard LogRecord attributes, excluded from extra fields
_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
}


class JsonFormatter(logging.Formatter):
    """JSON log formatter with invocation context.

    Output format:
    {
        "timestamp": "2026-01-10T12:34:56.789Z",
        "level": "DEBUG",
        "logger": "cronmutex.distributed.lock",
        "message": "Acquired lock 'nightly-report'",
        "module": "lock",
        "function": "acquire",
        "line": 42,
        "mutex": "nightly-report",
        "invocation_id": "a1b2c3d4"
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field, var in _CONTEXT_VARS.items():
            value = var.get()
            if value:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_data[key] = value
                except (TypeError, ValueError):
                    log_data[key] = str(value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter.

    Output format:
    2026-01-10 12:34:56 | DEBUG    | cronmutex.distributed.lock | Acquired lock 'x' | mutex=x
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level, "")
            level = f"{color}{level}{self.RESET}"

        message = record.getMessage()

        context_parts = []
        mutex = mutex_var.get()
        if mutex:
            context_parts.append(f"mutex={mutex}")
        invocation_id = invocation_id_var.get()
        if invocation_id:
            context_parts.append(f"inv={invocation_id}")

        context = f" | {' '.join(context_parts)}" if context_parts else ""

        result = f"{timestamp} | {level:8} | {record.name} | {message}{context}"

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def configure_logging(
    json_format: bool = False,
    level: str = "WARNING",
    use_colors: bool = True,
) -> None:
    """Configure process-wide logging on stderr.

    Args:
        json_format: Use JSON format instead of the console format
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_colors: Use ANSI colors in console format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_colors=use_colors))

    root_logger.addHandler(handler)

    # redis-py is chatty at DEBUG
    logging.getLogger("redis").setLevel(logging.WARNING)


class LogContext:
    """Context manager for adding temporary log context.

    Usage:
        with LogContext(mutex="nightly-report", invocation_id="a1b2c3d4"):
            logger.debug("Checking min delay")
    """

    def __init__(self, **kwargs: str) -> None:
        self.extra = kwargs
        self._tokens: dict[str, contextvars.Token[str]] = {}

    def __enter__(self) -> "LogContext":
        for field, value in self.extra.items():
            var = _CONTEXT_VARS.get(field)
            if var is not None:
                self._tokens[field] = var.set(value)
        return self

    def __exit__(self, *args: Any) -> None:
        for field, token in self._tokens.items():
            _CONTEXT_VARS[field].reset(token)
        self._tokens.clear()


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (typically __name__)."""
    return logging.getLogger(name)
