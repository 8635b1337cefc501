"""Logging infrastructure.

Provides structured logging with:
- JSONL format for log aggregation
- Automatic context injection (item_type, item_id, acting_user, ...)
- QueueHandler + QueueListener for non-blocking I/O
- Lazy evaluation for expensive debug messages
- OpenTelemetry trace correlation

Basic usage:
    import logging
    from fanout_service.infra.logging import get_lazy_logger, set_log_context

    logger = logging.getLogger(__name__)
    set_log_context(item_type="reply", item_id=42)
    logger.info("Dispatching")  # includes item_type and item_id

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"recipients={sorted(recipients)}")
"""

from fanout_service.infra.logging.config import configure_logging, setup_logging, shutdown
from fanout_service.infra.logging.context import (
    ContextBoundLogger,
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    get_logger,
    log_context,
    set_log_context,
)
from fanout_service.infra.logging.formatters import JSONFormatter
from fanout_service.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextBoundLogger",
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "get_logger",
    "log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
