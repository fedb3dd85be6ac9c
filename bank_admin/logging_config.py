"""
Structured Logging

All ``bank_admin.*`` loggers share one handler installed on the ``bank_admin``
logger. Records carry optional structured attributes (who acted, what was
done, on which resource, plus free-form details), and every record written
while an HTTP request is being served carries that request's correlation id.
"""

import contextvars
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ROOT_LOGGER = "bank_admin"

# Record attributes copied into the output when set, in this order
STRUCTURED_FIELDS = ("correlation_id", "user_id", "action", "resource", "details")

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_correlation_id = contextvars.ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Correlation id of the request being served in this context, if any"""
    return _correlation_id.get()


def bind_correlation_id(value: Optional[str] = None) -> contextvars.Token:
    """
    Set the correlation id for the current context.

    A fresh id is generated when value is empty. Returns the token to pass to
    ``unbind_correlation_id`` once the unit of work is done.
    """
    return _correlation_id.set(value or uuid.uuid4().hex)


def unbind_correlation_id(token: contextvars.Token) -> None:
    _correlation_id.reset(token)


class CorrelationFilter(logging.Filter):
    """Stamps records with the context's correlation id unless one was given"""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = _correlation_id.get()
        return True


def _structured(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {}
    for name in STRUCTURED_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_structured(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain line with structured fields appended as key=value pairs"""

    def __init__(self):
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _structured(record)
        details = fields.pop("details", None) or {}
        pairs = [f"{k}={v}" for k, v in fields.items()]
        pairs.extend(f"{k}={v}" for k, v in details.items())
        return f"{line} {' '.join(pairs)}" if pairs else line


FORMATTERS = {
    "json": JSONFormatter,
    "text": TextFormatter,
}


def setup_logging(level: str = "INFO", log_format: str = "json",
                  logger_name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Install the single stream handler for the application loggers.

    Calling it again replaces the previous handler, so it is safe to call
    once per app instance.
    """
    formatter_class = FORMATTERS.get(log_format.lower())
    if formatter_class is None:
        raise ValueError(f"Unknown log format: {log_format} (expected one of {', '.join(FORMATTERS)})")

    logger = logging.getLogger(logger_name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter_class())
    handler.addFilter(CorrelationFilter())
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None) -> None:
    """
    Log a back office action with its structured fields.

    Args:
        logger: Logger to write to
        level: Level name (debug, info, warning, error)
        message: Human-readable summary
        user_id: Username of the acting user
        action: Short machine name of the action, e.g. ``deposit``
        resource: Kind of record acted on, e.g. ``account``
        extra: Additional key/value details, emitted under ``details``
    """
    fields = {"user_id": user_id, "action": action, "resource": resource, "details": extra}
    logger.log(
        getattr(logging, level.upper()), message,
        extra={k: v for k, v in fields.items() if v is not None}
    )
