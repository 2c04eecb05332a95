from __future__ import annotations

import json
import logging
import os
import time
from contextvars import ContextVar
from typing import Any, Optional


# Extras that asset_pipeline loggers pass via ``extra={...}``
_EXTRA_KEYS = ("request_id", "asset", "processor", "event_path", "status", "duration_ms")
_TRUTHY = {"1", "true", "yes", "on"}

# watchdog logs every inotify event at DEBUG; keep it quiet
_NOISY_LOGGERS = ("watchdog",)


class RequestIdFilter(logging.Filter):
    """Stamp the current request id onto records that do not carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            rid = get_request_id()
            if rid:
                record.request_id = rid
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)) + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)  # type: ignore[arg-type]
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if "request_id" not in data:
            rid = get_request_id()
            if rid:
                data["request_id"] = rid
        return json.dumps(data, ensure_ascii=False, default=str)


def _level_from_env(default: int) -> int:
    name = (os.environ.get("LOG_LEVEL") or "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def configure_json_logging(level: Optional[int] = None) -> None:
    root = logging.getLogger()
    root.setLevel(level if level is not None else _level_from_env(logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())
    # Remove other handlers to avoid duplicate logs
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def maybe_enable_json_logging() -> bool:
    if (os.environ.get("JSON_LOGS") or "").strip().lower() in _TRUTHY:
        configure_json_logging()
        return True
    return False


# Request-scoped context helpers
_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: Optional[str]) -> None:
    _REQUEST_ID.set(request_id)


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()
