"""
Structured Logging Service

Provides request correlation and optional JSON-formatted log output.

Features:
- JSON log formatter for machine-parseable output
- Request correlation via X-Request-ID
- Context propagation via contextvars
- One-shot root logger configuration from ``Config``
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from traktbridge.config import Config


# Context variable for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    """Set the request ID in context."""
    request_id_var.set(request_id)


def clear_context() -> None:
    request_id_var.set(None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid.uuid4())[:8]


class JSONLogFormatter(logging.Formatter):
    """
    JSON formatter for structured logging output.

    Produces one JSON object per line with the request ID of the
    request being served, when there is one.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        return json.dumps(log_data, default=str)


class RequestIdFilter(logging.Filter):
    """Attach the current request ID to every record for text formats."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Handler:
    """
    Configure the root logger once.

    Subsequent calls replace the handler installed by a previous call, so
    reloading the application does not duplicate output.

    Args:
        level: Log level name (defaults to ``Config.LOG_LEVEL``)
        json_output: Emit JSON lines (defaults to ``Config.LOG_FORMAT == "json"``)

    Returns:
        The configured handler
    """
    level = (level or Config.LOG_LEVEL).upper()
    if json_output is None:
        json_output = Config.LOG_FORMAT == "json"

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if getattr(existing, "_traktbridge", False):
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler()
    handler._traktbridge = True
    handler.addFilter(RequestIdFilter())

    if json_output:
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s - %(message)s'
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Silence noisy client debug messages
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return handler
