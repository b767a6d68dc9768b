"""JSON log output for request-engine events.

Every record carries the request it belongs to (``request_id``, ``method``,
``path``, ``attempt``) as top-level keys, followed by the event's own fields
such as ``status_code`` or ``wait_seconds``.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import IO, Any

from tdclient.config import Settings
from tdclient.logging_context import get_logging_context
from tdclient.security.redaction import redact_data

PACKAGE_LOGGER = "tdclient"
_HANDLER_NAME = "tdclient-json"


def _attempt_number(raw: str | None) -> int | None:
    if raw is None or not raw.isdigit():
        return None
    return int(raw)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        context = get_logging_context()
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "request_id": context.get("request_id"),
            "method": context.get("method"),
            "path": context.get("path"),
            "attempt": _attempt_number(context.get("attempt")),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                if payload.get(key) is None:
                    payload[key] = value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["error_type"] = exc_type.__name__ if exc_type else "Exception"
            payload["error_message"] = str(exc_value) if exc_value is not None else ""
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(redact_data(payload), default=str)


def resolve_level(name: str | None, default: int) -> int:
    if name is None or not name.strip():
        return default
    resolved = logging.getLevelName(name.strip().upper())
    return resolved if isinstance(resolved, int) else default


def configure_logging(
    settings: Settings | None = None,
    *,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Attach a JSON handler to the ``tdclient`` logger.

    Only the package logger is touched, plus the ``httpx``/``httpcore`` levels,
    which follow ``LOG_LEVEL`` unless overridden. Calling it again replaces the
    handler installed by the previous call.
    """
    settings = settings or Settings()
    level = resolve_level(settings.log_level, logging.INFO)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(package_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(existing)
            existing.close()

    handler = logging.StreamHandler(stream)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JsonFormatter())
    package_logger.addHandler(handler)
    package_logger.setLevel(level)

    http_default = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    logging.getLogger("httpx").setLevel(resolve_level(settings.httpx_log_level, http_default))
    logging.getLogger("httpcore").setLevel(
        resolve_level(settings.httpcore_log_level, http_default)
    )
    return handler
