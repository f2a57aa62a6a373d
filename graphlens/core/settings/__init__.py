"""Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from graphlens.core.settings import get_graphql_observer_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .graphql import (
    DEFAULT_SENSITIVE_VARIABLES,
    GraphQLObserverSettings,
    ServerKind,
    SubscriptionSettings,
    TransportMode,
)
from .loader import clear_all_caches, get_graphql_observer_settings, get_logging_settings
from .logs import LoggingSettings, LogLevel

__all__ = [
    "DEFAULT_SENSITIVE_VARIABLES",
    "GraphQLObserverSettings",
    "LogLevel",
    "LoggingSettings",
    "ServerKind",
    "SubscriptionSettings",
    "TransportMode",
    "clear_all_caches",
    "get_graphql_observer_settings",
    "get_logging_settings",
]
