"""
Logging setup for the gateway process.

Log lines carry a fixed set of context fields (which session, which
backend, which message or tool) next to the message text. Components
bind that context once with SessionLoggerAdapter; the formatters here
render it either as one JSON object per line or as ``key=value`` pairs
after a plain-text line.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

PACKAGE_LOGGER = "session_gateway"

# Record attributes rendered as context, in output order.
CONTEXT_FIELDS = ("session_id", "backend", "message_id", "tool_use_id")

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Context fields set on a record, skipping unset and None values."""
    context = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            context[name] = value if isinstance(value, (str, int, float, bool)) else str(value)
    return context


class GatewayJsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp`` (record creation time, UTC, ISO 8601), ``level``,
    ``logger``, ``message``, any context fields, and ``exception`` when
    the record carries one.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(record_context(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class GatewayTextFormatter(logging.Formatter):
    """Plain-text lines with context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = record_context(record)
        if not context:
            return line
        return line + " " + " ".join(f"{key}={value}" for key, value in context.items())


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: IO[str] | None = None,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Send the gateway's logs to stdout (or ``stream``).

    Replaces any handlers previously installed on the logger, so calling
    it twice does not duplicate lines.

    Args:
        level: Level number or name, case-insensitive
        json_format: JSON lines when True, plain text otherwise
        stream: Destination; stdout when None
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(GatewayJsonFormatter() if json_format else GatewayTextFormatter())

    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger


class SessionLoggerAdapter(logging.LoggerAdapter):
    """
    Logger bound to a session's context fields.

    None-valued fields are left out. A caller's own ``extra`` wins over
    the bound values for the same key.

    Example:
        >>> log = SessionLoggerAdapter(logger, session_id="abc", backend="chat")
        >>> log.bind(tool_use_id="t1").warning("Dropped tool output")
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, {k: v for k, v in context.items() if v is not None})

    def bind(self, **context: Any) -> "SessionLoggerAdapter":
        """A new adapter with extra context layered over this one's."""
        return SessionLoggerAdapter(self.logger, **{**self.extra, **context})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
