"""
Logging setup for JNX-OS.

Every handler installed here carries a RedactingFilter, so PII patterns and
secret-named extra fields are scrubbed before any record reaches a sink.
Development uses the plain text format; other environments emit one JSON
object per line including the structured `extra=` fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jnx_os.config.settings import Settings
from jnx_os.privacy.redaction import (
    REDACTION_MARKER,
    is_sensitive_field,
    redact_object,
    redact_text,
)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord has; anything else arrived through extra=
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName", "asctime",
})


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class RedactingFilter(logging.Filter):
    """
    Logging filter that redacts PII and secrets from log records.

    Usage:
        handler.addFilter(RedactingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_text(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_object(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_text(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        for key, value in _extra_fields(record).items():
            if is_sensitive_field(key):
                setattr(record, key, REDACTION_MARKER)
            elif isinstance(value, (str, dict, list, tuple)):
                setattr(record, key, redact_object(value))

        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extra fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(settings: Settings, stream: Optional[Any] = None) -> logging.Handler:
    """
    Install a single redacting handler on the root logger.

    Replaces previously installed handlers so repeated calls (app reloads,
    tests) do not duplicate output. Returns the handler.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler.addFilter(RedactingFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(settings.log_level)
    return handler
