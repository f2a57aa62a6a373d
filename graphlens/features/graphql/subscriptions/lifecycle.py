"""Subscription lifecycle tracking.

Turns connect/start/data/error/complete/disconnect events into records for
the entry sink. Every subscription that was started is finalized exactly once.
A connection that leaves the registry for any reason, including eviction at
capacity, completes the subscriptions it still holds.

Example:
    coordinator = SubscriptionLifecycleCoordinator(collector, settings)
    await coordinator.handle_connection("conn-1", ip="10.0.0.1", protocol="graphql-ws")
    await coordinator.handle_start(SubscriptionEvent("conn-1", "1", query="subscription { ticks }"))
    await coordinator.handle_disconnection("conn-1")  # emits the "complete" record
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from graphlens.core.settings import GraphQLObserverSettings
from graphlens.features.graphql.analysis.query_parser import hash_query, truncate_query
from graphlens.features.graphql.analysis.sanitizer import sanitize_response, sanitize_variables
from graphlens.features.graphql.collector import GRAPHQL_ENTRY_KIND
from graphlens.features.graphql.metrics import (
    record_subscription_connection,
    record_subscription_event,
    set_active_subscriptions,
)
from graphlens.features.graphql.models import (
    ErrorEntry,
    GraphQLPayload,
    OperationType,
    SubscriptionEventKind,
)
from graphlens.features.graphql.subscriptions.registry import (
    ActiveSubscription,
    Connection,
    ConnectionRegistry,
    RegistryStats,
)

if TYPE_CHECKING:
    from graphlens.features.graphql.collector import EntryCollector

logger = logging.getLogger(__name__)

PROTOCOLS: tuple[str, ...] = ("graphql-ws", "subscriptions-transport-ws", "unknown")
CAPTURE_MODES: tuple[str, ...] = ("gateway", "adapter")


@dataclass(slots=True)
class SubscriptionEvent:
    """One lifecycle event for a ``(connection_id, subscription_id)`` pair."""

    connection_id: str
    subscription_id: str
    query: str | None = None
    operation_name: str | None = None
    variables: dict[str, Any] | None = None
    data: Any = None
    error: BaseException | str | None = None
    protocol: str | None = None
    transport_mode: str | None = None


@dataclass
class SubscriptionMetrics:
    """Cumulative counters since the coordinator was created."""

    total_connections: int = 0
    total_disconnections: int = 0
    total_subscriptions: int = 0
    total_messages: int = 0
    total_errors: int = 0
    total_completes: int = 0
    by_protocol: dict[str, int] = field(default_factory=lambda: dict.fromkeys(PROTOCOLS, 0))
    by_transport_mode: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(CAPTURE_MODES, 0)
    )


def _error_message(error: BaseException | str | None) -> str | None:
    if error is None:
        return None
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return error


class SubscriptionLifecycleCoordinator:
    """Drives the connection registry and emits subscription records.

    Args:
        collector: Sink receiving the records.
        settings: Observer settings; ``settings.subscriptions`` controls tracking.
        registry: Registry to use; one sized from settings is created when omitted.
    """

    def __init__(
        self,
        collector: EntryCollector,
        settings: GraphQLObserverSettings | None = None,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self.collector = collector
        self.settings = settings or GraphQLObserverSettings()
        self.config = self.settings.subscriptions
        self.registry = registry or ConnectionRegistry(
            max_connections=self.config.max_connections,
            max_subscriptions_per_connection=self.config.max_subscriptions_per_connection,
        )
        self._metrics = SubscriptionMetrics()
        self._metrics_lock = threading.Lock()
        self._buffers: dict[tuple[str, str], list[Any]] = {}

        if self.config.debug:
            logger.info(
                "Subscription tracking initialized",
                extra={"transport_mode": self.config.transport_mode},
            )

    def is_enabled(self) -> bool:
        return self.settings.enabled and self.config.enabled

    def _debug(self, message: str, **context: Any) -> None:
        if self.config.debug:
            logger.debug(message, extra=context)

    def _bump(self, counter: str, amount: int = 1) -> None:
        with self._metrics_lock:
            setattr(self._metrics, counter, getattr(self._metrics, counter) + amount)

    def _sync_active_gauge(self) -> None:
        set_active_subscriptions(self.registry.get_stats().total_subscriptions)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def handle_connection(
        self,
        connection_id: str,
        ip: str | None = None,
        user_agent: str | None = None,
        protocol: str | None = None,
        transport_mode: str | None = None,
    ) -> None:
        """Register a new connection and count it by protocol and capture mode."""
        if not self.is_enabled() or not self.config.track_connection_events:
            return

        proto = protocol if protocol in PROTOCOLS else "unknown"
        with self._metrics_lock:
            self._metrics.total_connections += 1
            self._metrics.by_protocol[proto] += 1
            if transport_mode in CAPTURE_MODES:
                self._metrics.by_transport_mode[transport_mode] += 1
        record_subscription_connection(proto, transport_mode or "unknown")

        self._debug(
            "Subscription connection opened",
            connection_id=connection_id,
            ip=ip,
            protocol=proto,
            transport_mode=transport_mode,
        )
        _, displaced = self.registry.add_connection(connection_id, ip=ip, user_agent=user_agent)
        if displaced is not None:
            await self._finalize_connection(displaced)

    async def handle_disconnection(self, connection_id: str) -> None:
        """Drop a connection and finalize every subscription it still owns."""
        if not self.is_enabled():
            return

        self._bump("total_disconnections")
        connection = self.registry.remove_connection(connection_id)
        if connection is None:
            return

        self._debug(
            "Subscription connection closed",
            connection_id=connection_id,
            active_subscriptions=len(connection.subscriptions),
        )
        await self._finalize_connection(connection)

    async def _finalize_connection(self, connection: Connection) -> None:
        """Complete every subscription of a connection that left the registry."""
        for subscription in list(connection.subscriptions.values()):
            await self._finalize_complete(connection, subscription)
        connection.subscriptions.clear()
        self._sync_active_gauge()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def handle_start(self, event: SubscriptionEvent) -> str | None:
        """Register a subscription and emit its ``start`` record.

        Returns:
            The correlation id threading all records of this subscription, or
            None when tracking is disabled or the subscription was rejected
            (unknown connection or per-connection cap reached).
        """
        if not self.is_enabled():
            return None

        connection = self.registry.get_connection(event.connection_id)
        if connection is None and not self.config.track_connection_events:
            connection, displaced = self.registry.add_connection(event.connection_id)
            if displaced is not None:
                await self._finalize_connection(displaced)
        if connection is None:
            self._debug(
                "Subscription rejected: unknown connection",
                connection_id=event.connection_id,
                subscription_id=event.subscription_id,
            )
            return None

        # A reused id supersedes the running subscription
        previous = self.registry.remove_subscription(event.connection_id, event.subscription_id)
        if previous is not None:
            await self._finalize_complete(connection, previous)

        correlation_id = str(uuid.uuid4())
        query = event.query or ""
        subscription = self.registry.add_subscription(
            event.connection_id,
            event.subscription_id,
            query,
            operation_name=event.operation_name,
            variables=event.variables,
            correlation_id=correlation_id,
        )
        if subscription is None:
            self._debug(
                "Subscription rejected: capacity reached",
                connection_id=event.connection_id,
                subscription_id=event.subscription_id,
            )
            return None

        self._bump("total_subscriptions")
        self._sync_active_gauge()
        self._debug(
            "Subscription started",
            connection_id=event.connection_id,
            subscription_id=event.subscription_id,
            operation_name=event.operation_name,
            protocol=event.protocol,
            transport_mode=event.transport_mode,
        )

        payload = self._build_payload(
            connection,
            subscription,
            SubscriptionEventKind.START,
            duration=0.0,
            message_count=None,
            variables=(
                sanitize_variables(event.variables, self.settings.sensitive_variables)
                if self.settings.capture_variables
                else None
            ),
        )
        await self._emit(payload, correlation_id, immediate=False)
        return correlation_id

    async def handle_data(self, event: SubscriptionEvent) -> None:
        """Count a pushed message and emit a ``data`` record while under the cap."""
        if not self.is_enabled() or not self.config.track_messages:
            return

        count = self.registry.increment_message_count(event.connection_id, event.subscription_id)
        if count is None:
            return
        self._bump("total_messages")

        subscription = self.registry.get_subscription(event.connection_id, event.subscription_id)
        connection = self.registry.get_connection(event.connection_id)
        if subscription is None or connection is None:
            return

        self._debug(
            "Subscription data pushed",
            connection_id=event.connection_id,
            subscription_id=event.subscription_id,
            message_count=count,
        )
        if count > self.config.max_tracked_messages:
            return

        response_data = None
        if self.config.capture_message_data and event.data is not None:
            response_data = sanitize_response(
                event.data,
                self.settings.sensitive_variables,
                self.settings.max_response_size,
            )
            buffer = self._buffers.setdefault((event.connection_id, event.subscription_id), [])
            if len(buffer) < self.config.max_tracked_messages:
                buffer.append(response_data)

        payload = self._build_payload(
            connection,
            subscription,
            SubscriptionEventKind.DATA,
            duration=subscription.elapsed_ms(),
            message_count=count,
            response_data=response_data,
        )
        await self._emit(payload, subscription.correlation_id, immediate=False)

    async def handle_error(self, event: SubscriptionEvent) -> None:
        """Emit an ``error`` record immediately and end the subscription."""
        if not self.is_enabled():
            return

        connection = self.registry.get_connection(event.connection_id)
        subscription = self.registry.remove_subscription(event.connection_id, event.subscription_id)
        if connection is None or subscription is None:
            return

        self._bump("total_errors")
        self._sync_active_gauge()
        self._buffers.pop((event.connection_id, event.subscription_id), None)

        message = _error_message(event.error)
        self._debug(
            "Subscription error",
            connection_id=event.connection_id,
            subscription_id=event.subscription_id,
            error=message,
        )
        duration = subscription.elapsed_ms()
        payload = self._build_payload(
            connection,
            subscription,
            SubscriptionEventKind.ERROR,
            duration=duration,
            status_code=500,
            has_errors=True,
            errors=[ErrorEntry(message=message)] if message else None,
            subscription_duration=duration,
        )
        await self._emit(payload, subscription.correlation_id, immediate=True)

    async def handle_complete(self, event: SubscriptionEvent) -> None:
        """Finalize a subscription; a second complete for the same id is a no-op."""
        if not self.is_enabled():
            return

        connection = self.registry.get_connection(event.connection_id)
        subscription = self.registry.remove_subscription(event.connection_id, event.subscription_id)
        if connection is None or subscription is None:
            return
        self._sync_active_gauge()
        await self._finalize_complete(connection, subscription)

    async def _finalize_complete(
        self,
        connection: Connection,
        subscription: ActiveSubscription,
    ) -> None:
        self._bump("total_completes")
        self._buffers.pop((connection.connection_id, subscription.subscription_id), None)

        duration = subscription.elapsed_ms()
        self._debug(
            "Subscription completed",
            connection_id=connection.connection_id,
            subscription_id=subscription.subscription_id,
            message_count=subscription.message_count,
            duration=duration,
        )
        payload = self._build_payload(
            connection,
            subscription,
            SubscriptionEventKind.COMPLETE,
            duration=duration,
            subscription_duration=duration,
        )
        await self._emit(payload, subscription.correlation_id, immediate=False)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _build_payload(
        self,
        connection: Connection,
        subscription: ActiveSubscription,
        event: SubscriptionEventKind,
        duration: float,
        **overrides: Any,
    ) -> GraphQLPayload:
        fields: dict[str, Any] = {
            "operation_name": subscription.operation_name,
            "operation_type": OperationType.SUBSCRIPTION,
            "query": truncate_query(subscription.query, self.settings.max_query_size),
            "query_hash": hash_query(subscription.query),
            "duration": duration,
            "status_code": 200,
            "has_errors": False,
            "subscription_id": subscription.subscription_id,
            "subscription_event": event,
            "message_count": subscription.message_count,
            "ip": connection.ip,
            "user_agent": connection.user_agent,
        }
        fields.update(overrides)
        return GraphQLPayload(**fields)

    async def _emit(self, payload: GraphQLPayload, correlation_id: str | None, *, immediate: bool) -> None:
        record_subscription_event(str(payload.subscription_event))
        try:
            if immediate:
                await self.collector.collect_immediate(GRAPHQL_ENTRY_KIND, payload, correlation_id)
            else:
                await self.collector.collect(GRAPHQL_ENTRY_KIND, payload, correlation_id)
        except Exception:
            logger.exception(
                "Failed to collect subscription record",
                extra={
                    "subscription_id": payload.subscription_id,
                    "subscription_event": payload.subscription_event,
                },
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_metrics(self) -> SubscriptionMetrics:
        """Return a snapshot of the counters; mutating it has no effect."""
        with self._metrics_lock:
            return copy.deepcopy(self._metrics)

    def get_stats(self) -> RegistryStats:
        return self.registry.get_stats()

    def get_buffered_messages(self, connection_id: str, subscription_id: str) -> list[Any]:
        return list(self._buffers.get((connection_id, subscription_id), ()))

    def clear(self) -> None:
        self.registry.clear()
        self._buffers.clear()
        self._sync_active_gauge()


__all__ = [
    "CAPTURE_MODES",
    "PROTOCOLS",
    "SubscriptionEvent",
    "SubscriptionLifecycleCoordinator",
    "SubscriptionMetrics",
]
