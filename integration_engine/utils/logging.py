"""Logging configuration."""

import logging
import json
import sys
from datetime import datetime
from typing import Any, Dict

from integration_engine.core.config import Settings


_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_NOISY_LOGGERS = ("httpx", "httpcore", "pymongo", "motor")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with ``extra`` fields merged in."""

    def __init__(self, service: str = "integration-engine", environment: str = "development"):
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service,
            "environment": self.environment,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # integration_id, webhook_id and the like passed via extra=
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def _build_formatter(settings: Settings) -> logging.Formatter:
    if settings.log_format == "json":
        return JSONFormatter(settings.service_name, settings.environment)
    return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logging(settings: Settings) -> None:
    """Route all logging to stdout in the configured format."""
    level = "DEBUG" if settings.debug else settings.log_level.upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(settings))

    logging.root.handlers = [handler]
    logging.root.setLevel(level)
    for name in ("uvicorn", "uvicorn.access", "fastapi"):
        logging.getLogger(name).setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
