"""graphlens: observability for GraphQL operations and subscriptions.

Typical Strawberry setup:
    import strawberry
    from graphlens import GraphQLWatcher, LoggingEntryCollector

    watcher = GraphQLWatcher(LoggingEntryCollector())
    schema = strawberry.Schema(query=Query, extensions=[watcher.get_plugin()])
"""

from __future__ import annotations

from graphlens.core.exceptions import AdapterUnavailableError, GraphLensError
from graphlens.core.settings import GraphQLObserverSettings, SubscriptionSettings
from graphlens.features.graphql.collector import (
    EntryCollector,
    LoggingEntryCollector,
    MemoryEntryCollector,
)
from graphlens.features.graphql.models import GraphQLPayload
from graphlens.features.graphql.watcher import GraphQLWatcher

__version__ = "0.1.0"

__all__ = [
    "AdapterUnavailableError",
    "EntryCollector",
    "GraphLensError",
    "GraphQLObserverSettings",
    "GraphQLPayload",
    "GraphQLWatcher",
    "LoggingEntryCollector",
    "MemoryEntryCollector",
    "SubscriptionSettings",
    "__version__",
]
