"""Entry point tying settings, adapters and subscription tracking together.

Example:
    watcher = GraphQLWatcher(LoggingEntryCollector())
    schema = strawberry.Schema(query=Query, extensions=[watcher.get_plugin()])

    interceptor = watcher.get_ws_interceptor()
    ws = ObservedWebSocket(websocket, interceptor)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from graphlens.core.exceptions import AdapterUnavailableError
from graphlens.core.settings import GraphQLObserverSettings, get_graphql_observer_settings
from graphlens.features.graphql.adapters.base import BaseGraphQLAdapter, is_package_available
from graphlens.features.graphql.adapters.hook_adapter import HookAdapter
from graphlens.features.graphql.subscriptions.lifecycle import SubscriptionLifecycleCoordinator
from graphlens.features.graphql.subscriptions.transport import WsMessageInterceptor

if TYPE_CHECKING:
    from graphlens.features.graphql.adapters.base import TagsResolver
    from graphlens.features.graphql.collector import EntryCollector

logger = logging.getLogger(__name__)

_SERVER_PACKAGES = {"strawberry": "strawberry", "hooks": "graphql"}


class RegistrationMode(str, Enum):
    """How the plugin ended up registered with the host engine."""

    PENDING = "pending"
    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class WatcherStats:
    initialized: bool
    adapter_type: str | None
    registration_mode: str
    total_connections: int | None = None
    total_subscriptions: int | None = None


class GraphQLWatcher:
    """Selects and owns the adapter and the subscription coordinator.

    Args:
        collector: Sink receiving every record.
        settings: Observer settings; loaded from the environment when omitted.
        tags_resolver: Optional callable ``(payload, request) -> tags`` (sync
            or async) that labels each operation record.
    """

    def __init__(
        self,
        collector: EntryCollector,
        settings: GraphQLObserverSettings | None = None,
        tags_resolver: TagsResolver | None = None,
    ) -> None:
        self.collector = collector
        self.settings = settings or get_graphql_observer_settings()
        self.tags_resolver = tags_resolver
        self.adapter: BaseGraphQLAdapter | None = None
        self.subscriptions: SubscriptionLifecycleCoordinator | None = None
        self.registration_mode = RegistrationMode.PENDING
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def detect_server(self) -> str:
        """Return ``"strawberry"``, ``"hooks"`` or ``"none"`` by importability."""
        if is_package_available("strawberry"):
            logger.debug("Detected Strawberry")
            return "strawberry"
        if is_package_available("graphql"):
            logger.debug("Detected graphql-core")
            return "hooks"
        return "none"

    def _create_adapter(self, server: str) -> BaseGraphQLAdapter:
        if server == "strawberry":
            # Imported here so that hook-only installs never import strawberry
            from graphlens.features.graphql.adapters.strawberry_adapter import StrawberryAdapter

            return StrawberryAdapter()
        return HookAdapter()

    def initialize(self) -> None:
        """Create the adapter and subscription coordinator. Safe to call twice.

        Raises:
            AdapterUnavailableError: An explicitly requested server is not installed.
        """
        if self._initialized:
            return
        if not self.settings.enabled:
            logger.info("GraphQL watcher is disabled")
            return

        server = self.settings.server
        if server == "auto":
            server = self.detect_server()
        elif not is_package_available(_SERVER_PACKAGES[server]):
            raise AdapterUnavailableError(
                detail=f"GraphQL server '{server}' was requested but is not installed",
                extra={"server": server, "package": _SERVER_PACKAGES[server]},
            )

        if server == "none":
            logger.warning(
                "No GraphQL server detected. Install strawberry-graphql or graphql-core "
                "to enable GraphQL tracking."
            )
            return

        if self.settings.subscriptions.enabled:
            self.subscriptions = SubscriptionLifecycleCoordinator(self.collector, self.settings)

        adapter = self._create_adapter(server)
        adapter.initialize(
            self.settings,
            self.collector,
            subscriptions=self.subscriptions,
            tags_resolver=self.tags_resolver,
        )
        self.adapter = adapter
        self._initialized = True
        logger.info("GraphQL watcher initialized", extra={"adapter": adapter.type})

    def get_plugin(self) -> Any:
        """Return the adapter's plugin, initializing on first use.

        Returns None when the watcher is disabled or no server is available.
        """
        if self.adapter is None:
            self.initialize()
        if self.adapter is None:
            logger.warning("GraphQL adapter not initialized")
            return None
        return self.adapter.get_plugin()

    def get_subscription_coordinator(self) -> SubscriptionLifecycleCoordinator | None:
        return self.subscriptions

    def resolve_transport_mode(self) -> str:
        """Pick how subscription traffic is captured.

        ``auto`` means adapter capture when the hook adapter is active and
        gateway capture otherwise.
        """
        mode = self.settings.subscriptions.transport_mode
        if mode != "auto":
            return mode
        if isinstance(self.adapter, HookAdapter):
            return "adapter"
        return "gateway"

    def get_ws_interceptor(self) -> WsMessageInterceptor | None:
        """Return an interceptor for ``ObservedWebSocket``, or None when untracked."""
        if self.adapter is None:
            self.initialize()
        if self.subscriptions is None:
            return None
        return WsMessageInterceptor(self.subscriptions, transport_mode=self.resolve_transport_mode())

    def mark_auto_registered(self) -> None:
        if self.registration_mode is RegistrationMode.PENDING:
            self.registration_mode = RegistrationMode.AUTO
            logger.debug("Plugin marked as auto-registered")

    def mark_manually_registered(self) -> None:
        if self.registration_mode is RegistrationMode.PENDING:
            self.registration_mode = RegistrationMode.MANUAL
            logger.debug("Plugin marked as manually registered")

    @property
    def is_auto_registered(self) -> bool:
        return self.registration_mode is RegistrationMode.AUTO

    def get_stats(self) -> WatcherStats:
        stats = None
        if self.subscriptions is not None:
            stats = self.subscriptions.get_stats()
        return WatcherStats(
            initialized=self._initialized,
            adapter_type=self.adapter.type if self.adapter is not None else None,
            registration_mode=self.registration_mode.value,
            total_connections=stats.total_connections if stats else None,
            total_subscriptions=stats.total_subscriptions if stats else None,
        )

    def destroy(self) -> None:
        if self.adapter is not None:
            self.adapter.destroy()
            self.adapter = None
        if self.subscriptions is not None:
            self.subscriptions.clear()
            self.subscriptions = None
        self._initialized = False


__all__ = ["GraphQLWatcher", "RegistrationMode", "WatcherStats"]
