"""
JSON logging for the backend.

One JSON object per line on stdout, tagged with a channel (http, otp, sms,
pairing, roster) and the current request id.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ("http", "otp", "sms", "pairing", "roster")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": record.name.split(".")[-1] if record.name.startswith("app.") else "app",
            "request_id": request_id_var.get(""),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging() -> logging.Logger:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"app.{channel}").setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return root


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger(f"app.{channel}")


def generate_request_id() -> str:
    return str(uuid.uuid4())
