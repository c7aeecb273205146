# core/logging_config.py

import logging
import json
from datetime import datetime, UTC
from core.request_context import get_request_id
from core import settings

# Standard LogRecord attributes that are not user-supplied extras
_RESERVED = (
    "args", "msg", "levelname", "levelno",
    "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process",
    "taskName", "name", "message",
)

# Extra fields whose values must never be written out
_SECRET_FIELDS = ("key", "api_key", "secret", "credential", "authorization")


def _mask(value) -> str:
    text = str(value)
    if len(text) <= 4:
        return "***"
    return f"***{text[-4:]}"


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
        }

        # If extra fields were passed
        for key, value in record.__dict__.items():
            if key in log_record or key in _RESERVED:
                continue
            if key.lower() in _SECRET_FIELDS:
                value = _mask(value)
            log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def setup_logging(level: str | None = None):
    # Gemini keys travel in the query string; keep HTTP libraries quiet
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level or settings.LOG_LEVEL)
    root.handlers.clear()
    root.addHandler(handler)
