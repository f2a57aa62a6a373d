"""Pytest configuration and shared fixtures.

Organization:
    - Collector Fixtures: in-memory entry sink
    - Settings Fixtures: observer settings factory and cache reset
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from graphlens.core.settings import (
    GraphQLObserverSettings,
    SubscriptionSettings,
    clear_all_caches,
)
from graphlens.features.graphql.collector import MemoryEntryCollector
from graphlens.infra.logging import clear_log_context

# Keep a developer's .env or shell from leaking into settings under test
for _name in list(os.environ):
    if _name.startswith(("GRAPHLENS_", "LOG_")):
        del os.environ[_name]


# ============================================================================
# Collector Fixtures
# ============================================================================


@pytest.fixture
def memory_collector() -> MemoryEntryCollector:
    """Create an empty in-memory collector."""
    return MemoryEntryCollector()


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def make_settings() -> Callable[..., GraphQLObserverSettings]:
    """Factory for observer settings.

    Keyword arguments prefixed with ``sub_`` go to ``SubscriptionSettings``.

    Example:
        def test_tracking(make_settings):
            settings = make_settings(n1_threshold=3, sub_track_messages=True)
    """

    def factory(**overrides: Any) -> GraphQLObserverSettings:
        sub_overrides = {
            key.removeprefix("sub_"): overrides.pop(key)
            for key in list(overrides)
            if key.startswith("sub_")
        }
        return GraphQLObserverSettings(
            subscriptions=SubscriptionSettings(**sub_overrides),
            **overrides,
        )

    return factory


@pytest.fixture(autouse=True)
def _reset_global_state() -> Iterator[None]:
    """Clear cached settings and the logging context around every test."""
    clear_all_caches()
    clear_log_context()
    yield
    clear_all_caches()
    clear_log_context()
