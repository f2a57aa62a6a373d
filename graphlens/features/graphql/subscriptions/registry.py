"""Bounded registry of subscription connections and their active subscriptions.

Capacity limits bound memory instead of raising: the oldest connection is
evicted when the connection cap is reached, and new subscriptions are refused
once a connection holds its per-connection maximum.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ActiveSubscription:
    """A subscription that has started and not yet completed or errored."""

    subscription_id: str
    query: str
    operation_name: str | None = None
    variables: dict[str, Any] | None = None
    correlation_id: str | None = None
    started_at: float = field(default_factory=time.time)
    started_ns: int = field(default_factory=time.perf_counter_ns)
    message_count: int = 0

    def elapsed_ms(self) -> float:
        return (time.perf_counter_ns() - self.started_ns) / 1_000_000


@dataclass
class Connection:
    """A persistent client connection carrying subscriptions."""

    connection_id: str
    ip: str | None = None
    user_agent: str | None = None
    connected_at: float = field(default_factory=time.time)
    subscriptions: dict[str, ActiveSubscription] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RegistryStats:
    total_connections: int = 0
    total_subscriptions: int = 0
    oldest_connection: float | None = None
    newest_connection: float | None = None


class ConnectionRegistry:
    """Thread-safe, bounded map of connection id to Connection.

    Example:
        registry = ConnectionRegistry(max_connections=2)
        registry.add_connection("a")
        registry.add_subscription("a", "1", "subscription { ticks }")
        registry.remove_connection("a")  # cascades to its subscriptions
    """

    def __init__(
        self,
        max_connections: int = 1000,
        max_subscriptions_per_connection: int = 100,
    ) -> None:
        self.max_connections = max_connections
        self.max_subscriptions_per_connection = max_subscriptions_per_connection
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    def add_connection(
        self,
        connection_id: str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[Connection, Connection | None]:
        """Register a connection, evicting the oldest one when at capacity.

        Re-adding a known id replaces it without evicting anything else.

        Returns:
            The new connection and the one it displaced (the evicted oldest
            connection, or the previous record under the same id), if any.
            The displaced connection still holds its subscriptions so the
            caller can finalize them.
        """
        connection = Connection(connection_id=connection_id, ip=ip, user_agent=user_agent)
        with self._lock:
            displaced = self._connections.pop(connection_id, None)
            if displaced is None and len(self._connections) >= self.max_connections:
                displaced = self._evict_oldest()
            self._connections[connection_id] = connection
        return connection, displaced

    def _evict_oldest(self) -> Connection | None:
        oldest: Connection | None = None
        for candidate in self._connections.values():
            if oldest is None or candidate.connected_at < oldest.connected_at:
                oldest = candidate
        if oldest is not None:
            del self._connections[oldest.connection_id]
            logger.debug(
                "Evicted oldest subscription connection",
                extra={
                    "connection_id": oldest.connection_id,
                    "dropped_subscriptions": len(oldest.subscriptions),
                },
            )
        return oldest

    def remove_connection(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.pop(connection_id, None)

    def get_connection(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def get_all_connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def add_subscription(
        self,
        connection_id: str,
        subscription_id: str,
        query: str,
        operation_name: str | None = None,
        variables: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> ActiveSubscription | None:
        """Attach a subscription to a connection.

        Returns:
            The new ActiveSubscription, or None when the connection is unknown
            or already holds ``max_subscriptions_per_connection`` subscriptions.
        """
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return None
            if len(connection.subscriptions) >= self.max_subscriptions_per_connection:
                return None
            subscription = ActiveSubscription(
                subscription_id=subscription_id,
                query=query,
                operation_name=operation_name,
                variables=variables,
                correlation_id=correlation_id,
            )
            connection.subscriptions[subscription_id] = subscription
            return subscription

    def remove_subscription(
        self,
        connection_id: str,
        subscription_id: str,
    ) -> ActiveSubscription | None:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return None
            return connection.subscriptions.pop(subscription_id, None)

    def get_subscription(
        self,
        connection_id: str,
        subscription_id: str,
    ) -> ActiveSubscription | None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return None
        return connection.subscriptions.get(subscription_id)

    def increment_message_count(self, connection_id: str, subscription_id: str) -> int | None:
        """Bump a subscription's message counter and return the new count."""
        with self._lock:
            subscription = self.get_subscription(connection_id, subscription_id)
            if subscription is None:
                return None
            subscription.message_count += 1
            return subscription.message_count

    def find_by_correlation_id(
        self,
        correlation_id: str,
    ) -> tuple[Connection, ActiveSubscription] | None:
        with self._lock:
            for connection in self._connections.values():
                for subscription in connection.subscriptions.values():
                    if subscription.correlation_id == correlation_id:
                        return connection, subscription
        return None

    def get_stats(self) -> RegistryStats:
        with self._lock:
            connections = list(self._connections.values())
        if not connections:
            return RegistryStats()
        timestamps = [c.connected_at for c in connections]
        return RegistryStats(
            total_connections=len(connections),
            total_subscriptions=sum(len(c.subscriptions) for c in connections),
            oldest_connection=min(timestamps),
            newest_connection=max(timestamps),
        )

    def clear(self) -> None:
        with self._lock:
            self._connections.clear()


__all__ = [
    "ActiveSubscription",
    "Connection",
    "ConnectionRegistry",
    "RegistryStats",
]
