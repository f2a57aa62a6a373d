"""Subscription lifecycle tracking over persistent connections."""

from __future__ import annotations

from .lifecycle import SubscriptionEvent, SubscriptionLifecycleCoordinator, SubscriptionMetrics
from .registry import ActiveSubscription, Connection, ConnectionRegistry, RegistryStats
from .transport import (
    ObservedWebSocket,
    WsConnectionInfo,
    WsMessageInterceptor,
    create_gateway_handlers,
    detect_protocol,
    extract_connection_info,
)

__all__ = [
    "ActiveSubscription",
    "Connection",
    "ConnectionRegistry",
    "ObservedWebSocket",
    "RegistryStats",
    "SubscriptionEvent",
    "SubscriptionLifecycleCoordinator",
    "SubscriptionMetrics",
    "WsConnectionInfo",
    "WsMessageInterceptor",
    "create_gateway_handlers",
    "detect_protocol",
    "extract_connection_info",
]
