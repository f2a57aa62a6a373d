"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from graphlens.core.settings.loader import get_graphql_observer_settings

    settings = get_graphql_observer_settings()  # First call: loads and validates
    settings = get_graphql_observer_settings()  # Subsequent calls: cached instance

Testing:
    In tests, clear the cache to force reload:
    get_graphql_observer_settings.cache_clear()

    Or construct settings directly:
    settings = GraphQLObserverSettings(trace_field_resolvers=True)
"""

from __future__ import annotations

from functools import lru_cache

from .graphql import GraphQLObserverSettings
from .logs import LoggingSettings


@lru_cache(maxsize=1)
def get_graphql_observer_settings() -> GraphQLObserverSettings:
    """Get cached GraphQL observer settings.

    Returns:
        Validated and frozen GraphQLObserverSettings instance.
    """
    return GraphQLObserverSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear all settings caches (for testing)."""
    get_graphql_observer_settings.cache_clear()
    get_logging_settings.cache_clear()
