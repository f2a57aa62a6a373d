"""Prometheus metrics for observed GraphQL traffic.

These count what the observer itself saw (operations, N+1 warnings, traces,
subscription lifecycle events). They are process-local; scraping and
aggregation are left to Prometheus.

Usage:
    from graphlens.features.graphql.metrics import OBSERVER_METRICS, record_operation

    record_operation("query", has_errors=False, duration_ms=12.5)
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

__all__ = [
    "OBSERVER_METRICS",
    "GraphQLObserverMetrics",
    "record_field_traces",
    "record_n1_warning",
    "record_operation",
    "record_skipped_operation",
    "record_subscription_connection",
    "record_subscription_event",
    "set_active_subscriptions",
]


class GraphQLObserverMetrics:
    """Container for graphlens Prometheus metrics."""

    def __init__(self) -> None:
        """Initialize all observer metrics."""
        # Operations
        self.operations_total = Counter(
            "graphlens_operations_total",
            "GraphQL operations recorded by the observer",
            labelnames=["operation_type", "status"],
        )
        self.operations_skipped_total = Counter(
            "graphlens_operations_skipped_total",
            "GraphQL operations not recorded (sampling, introspection, ignore list)",
            labelnames=["reason"],
        )
        self.operation_duration_seconds = Histogram(
            "graphlens_operation_duration_seconds",
            "Observed GraphQL operation duration in seconds",
            labelnames=["operation_type"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # Resolver analysis
        self.n1_warnings_total = Counter(
            "graphlens_n1_warnings_total",
            "Potential N+1 resolver patterns detected",
            labelnames=["parent_type", "field"],
        )
        self.field_traces_total = Counter(
            "graphlens_field_traces_total",
            "Field resolver traces recorded",
        )

        # Subscriptions
        self.subscription_connections_total = Counter(
            "graphlens_subscription_connections_total",
            "Subscription connections opened",
            labelnames=["protocol", "transport_mode"],
        )
        self.subscription_events_total = Counter(
            "graphlens_subscription_events_total",
            "Subscription lifecycle records emitted",
            labelnames=["event"],
        )
        self.active_subscriptions = Gauge(
            "graphlens_active_subscriptions",
            "Subscriptions currently tracked by the registry",
        )


# Global metrics instance
OBSERVER_METRICS = GraphQLObserverMetrics()


def record_operation(operation_type: str, *, has_errors: bool, duration_ms: float) -> None:
    """Record a finished operation.

    Args:
        operation_type: query, mutation or subscription.
        has_errors: Whether the result carried errors.
        duration_ms: Total duration in milliseconds.
    """
    status = "error" if has_errors else "success"
    OBSERVER_METRICS.operations_total.labels(operation_type=operation_type, status=status).inc()
    OBSERVER_METRICS.operation_duration_seconds.labels(operation_type=operation_type).observe(
        duration_ms / 1000
    )


def record_skipped_operation(reason: str) -> None:
    OBSERVER_METRICS.operations_skipped_total.labels(reason=reason).inc()


def record_n1_warning(parent_type: str, field: str) -> None:
    OBSERVER_METRICS.n1_warnings_total.labels(parent_type=parent_type, field=field).inc()


def record_field_traces(count: int) -> None:
    if count:
        OBSERVER_METRICS.field_traces_total.inc(count)


def record_subscription_connection(protocol: str, transport_mode: str) -> None:
    OBSERVER_METRICS.subscription_connections_total.labels(
        protocol=protocol,
        transport_mode=transport_mode,
    ).inc()


def record_subscription_event(event: str) -> None:
    OBSERVER_METRICS.subscription_events_total.labels(event=event).inc()


def set_active_subscriptions(count: int) -> None:
    OBSERVER_METRICS.active_subscriptions.set(count)
