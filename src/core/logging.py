"""Structured logging with Loguru.

All log output of the process, including the standard library loggers of
uvicorn, SQLAlchemy and asyncpg, goes through Loguru with one of two
formatters:

- **console**: Human-readable with inline context (development, test)
- **json**: One JSON object per line (staging, production, containers)

Request-scoped fields (correlation ID) are attached by the pipeline entry with
``logger.contextualize`` and appear on every line logged while the request is
being served. Sensitive field values are redacted in both formatters.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Final, cast

from loguru import logger

from src.core.config import Settings
from src.core.constants import REDACTED
from src.core.error_context import is_sensitive_field


class _LoggingState:
    """Simple state holder to track if logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()

DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Shown first, in this order, by the console formatter
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "method",
    "path",
    "route",
    "status_code",
    "duration_ms",
    "client_host",
)

# Standard library loggers routed through Loguru
INTERCEPTED_LOGGERS: Final[tuple[str, ...]] = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "sqlalchemy",
    "asyncpg",
)


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str:
    if field == "correlation_id" and len(str(value)) > CORRELATION_ID_DISPLAY_LENGTH:
        # Shorten correlation ID for readability
        value = str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        value = f"{value}ms"
    elif field == "status_code":
        status_str = str(value)
        if status_str.startswith("2"):
            return f"<green>{_escape(value)}</green>"
        if status_str.startswith(("4", "5")) or status_str == "aborted":
            return f"<red>{_escape(value)}</red>"
    return _escape(value)


def _format_extra_field(key: str, value: object) -> str:
    str_value = str(value)
    if is_sensitive_field(key):
        str_value = REDACTED
    elif len(str_value) > MAX_FIELD_VALUE_LENGTH:
        # Limit length of field values to prevent huge logs
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(str_value)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    context_parts = [
        f"<yellow>{_format_priority_field(field, extra[field])}</yellow>"
        for field in PRIORITY_FIELDS
        if extra.get(field) is not None
    ]
    context_parts.extend(
        f"<dim>{_format_extra_field(key, value)}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    )
    return context_parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format log record for console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Format string for Loguru, with context inlined.
    """
    try:
        time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        location = f"{record['name']}:{record['function']}:{record['line']}"

        parts = [
            f"<green>{time_str}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{_escape(location)}</cyan>",
        ]

        context_parts = _format_context_fields(record.get("extra", {}))
        if context_parts:
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(record.get("message", "")))

        line = " | ".join(parts)
        if record.get("exception"):
            line += "\n{exception}"
        return line + "\n"
    except (AttributeError, TypeError, ValueError, KeyError) as e:
        # Fallback to default format if anything goes wrong
        logger.trace(f"Failed to format log record: {e}")
        return DEFAULT_LOG_FORMAT + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format log record as one JSON line.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if extra := record.get("extra", {}):
        log_entry.update(
            {
                key: REDACTED if is_sensitive_field(key) else value
                for key, value in extra.items()
                if not key.startswith("_")
            }
        )

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru.

        Args:
            record: Standard library LogRecord to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(
            logger_name=record.name
        ).log(level, record.getMessage())


def setup_logging(settings: Settings) -> None:
    """Configure Loguru and route standard logging through it.

    Only the first call has an effect.

    Args:
        settings: Application settings containing log configuration.
    """
    if _state.configured:
        return

    logger.remove()

    log_config = settings.log_config
    formatter_type = log_config.log_formatter_type or "console"

    if formatter_type == "console":
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:

        def structured_sink(message: object) -> None:
            """Write each record as one JSON line."""
            record = getattr(message, "record", None)
            if record is not None:
                sys.stdout.write(serialize_for_json(record))
                sys.stdout.flush()

        logger.add(
            structured_sink,
            level=log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(logger_name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    # The pipeline writes its own access log line per request
    logging.getLogger("uvicorn.access").disabled = True

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=log_config.log_level,
    )
    _state.configured = True
