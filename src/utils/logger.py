"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

ROOT_LOGGER = "mathviz"

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Formats log records as one JSON object per line.

    Structured fields passed as ``extra={"extra": {...}}`` are merged into the
    payload, after the static fields configured for the process.
    """

    def __init__(self, static_fields: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self.static_fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(
    level: str = "INFO",
    fmt: str = "json",
    static_fields: Optional[Mapping[str, Any]] = None,
) -> None:
    """Installs a single stderr handler on the root logger.

    Args:
        level: Log level name.
        fmt: `json` for structured output, `text` for a plain line format.
        static_fields: Fields added to every JSON record (e.g. service name).
    """
    handler = logging.StreamHandler()
    if fmt == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JsonFormatter(static_fields))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(str(level).upper())


def configure_from_settings(settings: Optional[Mapping[str, Any]], level: Optional[str] = None) -> None:
    """Applies the `logging` section of the visualizer config; `level` overrides it."""
    settings = settings or {}
    configure_logging(
        level=level or str(settings.get("level", "INFO")),
        fmt=str(settings.get("format", "json")),
        static_fields=settings.get("fields") or None,
    )


def get_logger(name: str) -> logging.Logger:
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = "{}.{}".format(ROOT_LOGGER, name)
    return logging.getLogger(name)


def log_event(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Logs `message` with `fields` attached as structured payload."""
    logger.log(level, message, extra={"extra": fields})
