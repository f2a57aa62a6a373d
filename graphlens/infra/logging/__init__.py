"""Logging infrastructure.

Basic usage:
    from graphlens.infra.logging import configure_logging, set_log_context
    import logging

    configure_logging(log_level="INFO", json_logs=True)
    logger = logging.getLogger(__name__)

    set_log_context(graphql_correlation_id="c-123")
    logger.info("Operation finished")  # Includes graphql_correlation_id
"""

from __future__ import annotations

from .config import configure_logging, setup_logging
from .context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    remove_from_log_context,
    set_log_context,
)
from .formatters import JSONFormatter

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
]
