"""
Structured JSON logging configuration using structlog.
"""
import logging
import sys
from typing import Any

import structlog
from structlog.types import FilteringBoundLogger

from flashlever.config.settings import get_settings


def configure_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_operation_event(
    logger: FilteringBoundLogger,
    event: str,
    operation_id: str,
    kind: str,
    **extra: Any,
) -> None:
    """Log open/unwind lifecycle events with a consistent shape."""
    logger.info(
        f"operation_{event}",
        operation_id=operation_id,
        kind=kind,
        **extra,
    )
