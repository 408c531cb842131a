"""Structured JSON logging with correlation ID support."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id
from .redaction import redact_value

SERVICE_NAME = "stayhub"


class JsonFormatter(logging.Formatter):
    """JSON formatter that includes correlation ID and redacted extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_obj["correlationId"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_obj.update({k: redact_value(v) for k, v in extra_fields.items()})

        return json.dumps(log_obj, default=str)


def configure_logging(level: str | None = None) -> None:
    """Route the stayhub logger tree to stdout as JSON.

    Domain modules log through logging.getLogger(__name__); attaching the
    handler to the package root covers all of them.
    """
    root = logging.getLogger(SERVICE_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(level or os.environ.get("LOG_LEVEL", "INFO"))


def get_logger(name: str) -> logging.Logger:
    """Get a logger that writes JSON through the stayhub handler."""
    configure_logging()
    return logging.getLogger(name)
