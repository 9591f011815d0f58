"""
Logging configuration for liberation job events.

This module provides structured JSON logging of job lifecycle events
(submission, phase transitions, completion, failure, persistence outcomes).
"""

import json
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Any

JOB_LOGGER_NAME = "liberator.jobs"

# Extra attributes copied from the record into the JSON entry, in this order
_JOB_FIELDS = ("event", "job_id", "project", "status", "progress", "phase", "score", "grade")
_RESULT_FIELDS = ("files_processed", "files_cleaned", "files_removed", "lines_removed", "archive_bytes")


class JobEventFormatter(logging.Formatter):
    """Formats job log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _JOB_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        for field in _RESULT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if hasattr(record, "error"):
            log_entry["error"] = record.error

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def configure_job_logging(
    log_file: str | None = None,
    log_level: str = "INFO",
    enable_console: bool = True,
) -> None:
    """
    Configure the structured job event logger.

    Args:
        log_file: Path to log file for job events (optional)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_console: Whether to also log to console
    """
    logger = logging.getLogger(JOB_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.propagate = False  # Don't duplicate into the plain-text root handler

    logger.handlers.clear()

    formatter = JobEventFormatter()

    if log_file:
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="H",  # Rotate every hour
            interval=1,
            backupCount=168,  # Keep 7 days of logs
            encoding="utf-8",
            utc=False,
        )
        file_handler.suffix = "%Y%m%d_%H%M%S.log"
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)


def get_job_logger() -> logging.Logger:
    """Get the job events logger."""
    return logging.getLogger(JOB_LOGGER_NAME)
