# backend/app/utils/logging.py
"""
Logging configuration for the valuation engine.

This module provides centralized logging setup with:
- Level and format from settings (LOG_LEVEL, LOG_FORMAT)
- Correlation ID on every record (request ID or revaluation run ID)
- JSON format option for log aggregation
- Suppression of noisy third-party library logs

Usage:
    from app.utils import setup_logging

    # In main.py, before creating the FastAPI app
    setup_logging()

Log Levels:
    DEBUG   - Per-holding pricing decisions, skipped unchanged prices
    INFO    - Trades executed, run summaries, scheduler lifecycle
    WARNING - Missing quotes, retries, circuit breaker opening
    ERROR   - Holding or portfolio failures inside a run, failed trades
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.config import settings
from app.utils.context import get_correlation_id

# timestamp | level | correlation_id | logger_name | message
DEFAULT_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

NOISY_LOGGERS = [
    "yfinance",
    "urllib3",
    "urllib3.connectionpool",
    "requests",
    "httpx",
    "httpcore",
    "peewee",
    "apscheduler.executors.default",
    "apscheduler.scheduler",
]

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "correlation_id", "message", "taskName",
}


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record (usable as %(correlation_id)s)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": ..., "level": "INFO", "logger": "app.services.trade_service",
     "correlation_id": "revaluation-...", "message": ..., "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure the root logger once at application startup.

    Args:
        level: Log level name, defaults to settings.log_level
        log_format: "text" or "json", defaults to settings.log_format
        suppress_noisy_loggers: Raise third-party loggers to WARNING
    """
    log_level_str = level or settings.log_level
    log_level = _get_log_level(log_level_str)
    format_type = (log_format or settings.log_format).lower()

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=DEFAULT_TEXT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={log_level_str}, format={format_type}",
        extra={"config": {"level": log_level_str, "format": format_type}},
    )


def _get_log_level(level_str: str) -> int:
    """
    Raises:
        ValueError: If level_str is not a valid log level
    """
    level_mapping = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    key = level_str.upper().strip()
    if key not in level_mapping:
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {', '.join(level_mapping)}"
        )
    return level_mapping[key]
