# backend/backoffice/logging_config.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .config import settings
from .middleware.request_id import get_request_id

# Passed through `extra=` by services; copied onto the JSON line when present.
STRUCTURED_EXTRAS = ("user_id", "role", "property_id", "booking_id", "action", "http")

# Third-party loggers and the level they are pinned to.
QUIET_LOGGERS = {
    "sqlalchemy.engine": "WARNING",
    "celery": "INFO",
    "uvicorn.access": "WARNING",
}


class RequestContextFilter(logging.Filter):
    """Stamps the current request id on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = getattr(record, "request_id", None)
        if rid:
            line["request_id"] = rid
        line.update({k: getattr(record, k) for k in STRUCTURED_EXTRAS if hasattr(record, k)})
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    lvl = (level or settings.log_level or "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    # replace, not append: uvicorn --reload imports the app again
    root.handlers[:] = [handler]
    root.setLevel(lvl)

    for name, quiet in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet)
