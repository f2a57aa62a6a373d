"""Logging configuration setup.

Uses ``logging.config.dictConfig`` with a single stream handler on the root
logger. Library loggers (``graphlens.*``) propagate to it.
"""

from __future__ import annotations

import logging
import logging.config
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from graphlens.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)
_LOGGING_INITIALIZED = False


def setup_logging(log_settings: LoggingSettings | None = None, *, force: bool = False) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from graphlens.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    configure_logging(
        log_level=settings_obj.level,
        json_logs=settings_obj.json_logs,
        include_context=settings_obj.include_context,
        service_name=settings_obj.service_name,
        logger_levels=settings_obj.logger_levels,
    )
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    include_context: bool = True,
    service_name: str = "graphlens",
    logger_levels: dict[str, str] | None = None,
) -> None:
    """Configure logging with dictConfig.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_logs: Enable JSONL (JSON Lines) structured logging.
        include_context: Enable ContextInjectingFilter for auto context.
        service_name: Static ``service`` field for JSON records.
        logger_levels: Per-logger level overrides.

    Example:
        configure_logging(
            log_level="INFO",
            json_logs=True,
            logger_levels={"graphlens.features.graphql.subscriptions": "DEBUG"},
        )
    """
    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": _build_formatters_config(json_logs, service_name),
        "filters": {},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "json" if json_logs else "text",
                "stream": "ext://sys.stderr",
                "filters": [],
            },
        },
        "loggers": {
            name: {"level": level} for name, level in (logger_levels or {}).items()
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    if include_context:
        config["filters"]["context"] = {
            "()": "graphlens.infra.logging.context.ContextInjectingFilter",
        }
        config["handlers"]["console"]["filters"].append("context")

    logging.config.dictConfig(config)
    logger.debug(
        "Logging configured",
        extra={"log_level": log_level, "json_logs": json_logs},
    )


def _build_formatters_config(json_logs: bool, service_name: str) -> dict[str, Any]:
    """Build formatters configuration for dictConfig."""
    if json_logs:
        return {
            "json": {
                "()": "graphlens.infra.logging.formatters.JSONFormatter",
                "fmt_keys": {
                    "level": "levelname",
                    "logger": "name",
                    "message": "message",
                },
                "static": {"service": service_name},
            }
        }
    return {
        "text": {
            "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }
    }
