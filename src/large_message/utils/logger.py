"""
Module: logger.py
Description: Structured logging configuration for the large message client.

Configures structlog for JSON output so that offload, resolve and cleanup
events can be shipped to CloudWatch Logs (or any JSON log sink) with
their context attached.

Key Components:
- JSON output for CloudWatch compatibility
- Timestamp and log level processors
- configure_logging() to apply a minimum level from settings
- get_logger() helper function

Dependencies: structlog, logging, datetime
Author: Large Message Client Team
"""

import logging
from datetime import datetime, timezone

import structlog


def _add_timestamp(logger, method_name, event_dict):
    """
    Add ISO 8601 timestamp to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with timestamp
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """Add log level to event dictionary."""
    event_dict["level"] = method_name.upper()
    return event_dict


_PROCESSORS = [
    _add_timestamp,
    _add_log_level,
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog with a minimum log level.

    Args:
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    structlog.configure(
        processors=_PROCESSORS,
        logger_factory=structlog.WriteLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


# Default configuration, everything at INFO and above
configure_logging("INFO")


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Payload offloaded", blob_name="msg-123", size=300000)
        {"blob_name": "msg-123", "size": 300000, "event": "Payload offloaded", "timestamp": "...", "level": "INFO"}
    """
    return structlog.get_logger(name)
