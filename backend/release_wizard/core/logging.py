# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Structured logging for Release Wizard.

Provides JSON-formatted logging for easy parsing and analysis.
Process logs only - per-block execution logs are domain records
(see release_wizard.models.release.ExecutionLog).
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any
from pathlib import Path


_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName"
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON for easy parsing by log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Simple text formatter for human-readable logs."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Get configured logger instance.

    Args:
        name: Logger name (usually __name__)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type (json or text)
        log_file: Optional log file path

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    # Choose formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "INFO",
    **kwargs: Any
) -> None:
    """
    Log structured event with additional fields.

    Args:
        logger: Logger instance
        event: Event name
        level: Log level
        **kwargs: Additional fields to include in log
    """
    log_func = getattr(logger, level.lower())
    log_func(event, extra=kwargs)


def get_service_logger(service_name: str) -> logging.Logger:
    """Get logger for service layer."""
    from release_wizard.core.config import get_config
    config = get_config()
    return get_logger(
        f"rwizard.service.{service_name}",
        log_level=config.log_level,
        log_format=config.log_format
    )


def get_engine_logger() -> logging.Logger:
    """Get logger for the release execution engine."""
    from release_wizard.core.config import get_config
    config = get_config()
    return get_logger(
        "rwizard.engine",
        log_level=config.log_level,
        log_format=config.log_format
    )


def get_integration_logger(system: str) -> logging.Logger:
    """Get logger for an external-system adapter."""
    from release_wizard.core.config import get_config
    config = get_config()
    return get_logger(
        f"rwizard.integration.{system}",
        log_level=config.log_level,
        log_format=config.log_format
    )
