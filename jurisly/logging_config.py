# jurisly/logging_config.py
"""
Logging setup for the Jurisly API.

Console output is either JSON (for log shippers) or a coloured single-line
format for development. Optional rotating files keep general, error and
business-event logs apart.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .config import settings


class StructuredFormatter(logging.Formatter):
    """Render each record as one JSON object"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "extra_data", None):
            log_data["extra"] = record.extra_data

        if getattr(record, "user_id", None):
            log_data["user_id"] = record.user_id

        if getattr(record, "request_id", None):
            log_data["request_id"] = record.request_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Single-line console format, coloured in development"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if settings.ENVIRONMENT == "development":
            color = self.COLORS.get(levelname, self.RESET)
            levelname = f"{color}{levelname:8s}{self.RESET}"
        else:
            levelname = f"{levelname:8s}"

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        message = f"{timestamp} | {levelname} | {record.name:25s} | {record.getMessage()}"

        if getattr(record, "user_id", None):
            message += f" [user={record.user_id}]"

        if getattr(record, "request_id", None):
            message += f" [req={record.request_id[:8]}]"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def setup_logging():
    """Configure the root logger. Call once, before the app is created."""

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO)
    if settings.LOG_FORMAT == "json":
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(HumanReadableFormatter())
    root_logger.addHandler(console_handler)

    if settings.ENABLE_FILE_LOGGING:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_dir / "app.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

        error_handler = TimedRotatingFileHandler(
            log_dir / "errors.log",
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(error_handler)

        business_handler = RotatingFileHandler(
            log_dir / "business.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8"
        )
        business_handler.setLevel(logging.INFO)
        business_handler.setFormatter(StructuredFormatter())
        business_logger.addHandler(business_handler)
        business_logger.propagate = False

    # Third-party noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "extra_data": {
                "environment": settings.ENVIRONMENT,
                "log_level": settings.LOG_LEVEL,
                "log_format": settings.LOG_FORMAT,
                "file_logging": settings.ENABLE_FILE_LOGGING
            }
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


business_logger = logging.getLogger("business")


def log_business_event(event_type: str, user_id: Optional[str] = None, **kwargs: Any):
    """
    Record a business event (signup, message sent, webhook fallback, ...)

    Usage:
        log_business_event("message_sent", user_id=user.id, role="user")
    """
    business_logger.info(
        f"Business Event: {event_type}",
        extra={
            "user_id": user_id,
            "extra_data": {
                "event_type": event_type,
                **kwargs
            }
        }
    )
