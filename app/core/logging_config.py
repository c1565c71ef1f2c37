"""Centralized structured logging configuration."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.core.config import get_config

# Noisy below WARNING outside development.
QUIET_LOGGERS = ("sqlalchemy.engine", "celery", "kombu", "amqp")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` context is flattened into the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", record.getMessage()),
        }
        message = record.getMessage()
        if message != payload["event"]:
            payload["message"] = message
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            for key, value in context.items():
                if value is not None and key not in payload:
                    payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(force: bool = False) -> None:
    """Install the JSON handlers on the root logger once (again with ``force``)."""
    config = get_config()
    root = logging.getLogger()
    if root.handlers and not force:
        return
    for handler in list(root.handlers):
        root.removeHandler(handler)

    root.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    formatter = JsonFormatter()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if config.LOG_FILE:
        file_handler = logging.FileHandler(config.LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if config.ENV != "development":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
