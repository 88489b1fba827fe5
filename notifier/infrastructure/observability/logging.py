"""
Structured logging setup for the studio notification engine.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def bind_job_context(**values: Any) -> None:
    """Bind job-scoped fields (job_run_id, detector) to subsequent log entries."""
    structlog.contextvars.bind_contextvars(**values)


def clear_job_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_delivery_attempt(
    channel: str,
    notification_type: str,
    success: bool,
    duration_ms: float,
    error: str = None,
):
    """Log channel delivery attempts with consistent fields."""
    logger = get_logger("delivery")

    log_data = {
        "channel": channel,
        "notification_type": notification_type,
        "success": success,
        "duration_ms": duration_ms,
        "log_type": "delivery_attempt",
    }

    if error:
        log_data["error"] = error

    if success:
        logger.info("Delivery attempt succeeded", **log_data)
    else:
        logger.warning("Delivery attempt failed", **log_data)
