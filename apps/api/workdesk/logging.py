from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from workdesk.context import get_correlation_id


# Extras copied into the "fields" object; anything else passed via ``extra`` is dropped.
LOG_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "user_id",
        "resource",
        "action",
        "reason",
        "entity_type",
        "entity_id",
        "from_status",
        "to_status",
        "attempt",
        "event_name",
    }
)


def _bind_correlation_id(record: logging.LogRecord) -> logging.LogRecord:
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        _bind_correlation_id(record)
        return True


_default_record_factory = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    return _bind_correlation_id(_default_record_factory(*args, **kwargs))


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, correlation_id, fields."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {key: value for key, value in record.__dict__.items() if key in LOG_FIELDS}
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "fields": fields,
            },
            default=str,
        )


def configure_logging(level_name: str = "INFO") -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_workdesk_configured", False):
        return

    level = getattr(logging, level_name.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._workdesk_configured = True  # type: ignore[attr-defined]
