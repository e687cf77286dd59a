"""
Structured logging configuration.

Provides JSON-formatted logging for workflow state transitions and events.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that outputs log records as JSON.

    Each log entry includes:
    - timestamp: ISO format datetime
    - level: Log level name
    - logger: Logger name
    - message: Log message
    - extra: Any additional fields passed to the log call
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra"):
            log_entry["extra"] = record.extra

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    logger_name: str = "itinerary_agents",
) -> logging.Logger:
    """
    Configure structured JSON logging.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to log file. If not provided, logs to stdout only.
        logger_name: Name for the logger instance.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers = []

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_state_transition(
    event: str,
    status: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a workflow state transition event at DEBUG level.

    Args:
        event: Name of the event (e.g., "Start", "StageSucceeded")
        status: Workflow status dictionary (key fields are extracted)
        extra: Additional context to include in the log
        logger: Logger instance to use. If not provided, uses default.
    """
    if logger is None:
        logger = logging.getLogger("itinerary_agents")
    if not logger.isEnabledFor(logging.DEBUG):
        return

    state_summary = {
        "session_id": status.get("session_id"),
        "state": status.get("state"),
        "current_stage": status.get("current_stage"),
        "progress_percentage": status.get("progress_percentage"),
        "total_cost": status.get("total_cost"),
    }

    log_data = {
        "event": event,
        "state_summary": state_summary,
    }

    if extra:
        log_data["extra"] = extra

    record = logger.makeRecord(
        logger.name,
        logging.DEBUG,
        "",
        0,
        f"State transition: {event}",
        args=(),
        exc_info=None,
    )
    record.extra = log_data

    logger.handle(record)
