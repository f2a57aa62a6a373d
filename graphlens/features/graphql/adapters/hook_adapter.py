"""Flat lifecycle hooks for engines without an extension system.

The host calls the hooks in order and passes the ``OperationContext`` returned
by ``pre_parsing`` back into each later hook. ``field_middleware`` produces a
graphql-core middleware bound to that context.

Usage with bare graphql-core:
    hooks = watcher.get_plugin()
    ctx = await hooks.pre_parsing(source, operation_name=name, variables=variables)
    document = parse(source)
    await hooks.pre_validation(ctx)
    errors = validate(schema, document)
    await hooks.pre_execution(ctx)
    result = await execute(
        schema,
        document,
        variable_values=variables,
        middleware=[hooks.field_middleware(ctx)],
    )
    await hooks.on_resolution(ctx, data=result.data, errors=result.errors)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from graphlens.features.graphql.subscriptions.lifecycle import SubscriptionEvent
from graphlens.features.graphql.subscriptions.transport import extract_connection_info

from .base import BaseGraphQLAdapter, get_request, is_package_available

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping

    from graphlens.features.graphql.models import GraphQLPayload
    from graphlens.features.graphql.subscriptions.lifecycle import (
        SubscriptionLifecycleCoordinator,
    )

    from .base import OperationContext

ADAPTER_TRANSPORT_MODE = "adapter"


@dataclass(frozen=True, slots=True)
class GraphQLHooks:
    """Bound hook callables handed to the host engine."""

    pre_parsing: Callable[..., Awaitable[OperationContext | None]]
    pre_validation: Callable[[OperationContext | None], Awaitable[None]]
    pre_execution: Callable[[OperationContext | None], Awaitable[None]]
    on_error: Callable[..., Awaitable[None]]
    on_resolution: Callable[..., Awaitable[GraphQLPayload | None]]
    field_middleware: Callable[[OperationContext | None], Callable[..., Any]]
    on_connection_open: Callable[..., Awaitable[None]]
    on_connection_close: Callable[[str], Awaitable[None]]
    pre_subscription_parsing: Callable[..., Awaitable[str | None]]
    pre_subscription_execution: Callable[[str, str], Awaitable[bool]]
    on_subscription_resolution: Callable[..., Awaitable[None]]
    on_subscription_error: Callable[..., Awaitable[None]]
    on_subscription_end: Callable[[str, str], Awaitable[None]]


class HookAdapter(BaseGraphQLAdapter):
    """Adapter for graphql-core and other hook-driven hosts."""

    type: ClassVar[str] = "hooks"

    def is_available(self) -> bool:
        return is_package_available("graphql")

    def get_plugin(self) -> GraphQLHooks:
        # Fail early when used before initialize()
        _ = self.coordinator
        return GraphQLHooks(
            pre_parsing=self.pre_parsing,
            pre_validation=self.pre_validation,
            pre_execution=self.pre_execution,
            on_error=self.on_error,
            on_resolution=self.on_resolution,
            field_middleware=self.field_middleware,
            on_connection_open=self.on_connection_open,
            on_connection_close=self.on_connection_close,
            pre_subscription_parsing=self.pre_subscription_parsing,
            pre_subscription_execution=self.pre_subscription_execution,
            on_subscription_resolution=self.on_subscription_resolution,
            on_subscription_error=self.on_subscription_error,
            on_subscription_end=self.on_subscription_end,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def pre_parsing(
        self,
        source: str,
        *,
        operation_name: str | None = None,
        variables: Mapping[str, Any] | None = None,
        request: Any = None,
        context: Any = None,
    ) -> OperationContext | None:
        """Start observing an operation; returns the context for later hooks."""
        if request is None:
            request = get_request(context)
        ctx = self.coordinator.begin(
            source,
            operation_name=operation_name,
            variables=variables,
            request=request,
        )
        if ctx is not None:
            self.coordinator.parse_started(ctx)
        return ctx

    async def pre_validation(self, ctx: OperationContext | None) -> None:
        if ctx is None:
            return
        self.coordinator.parse_ended(ctx)
        self.coordinator.validate_started(ctx)

    async def pre_execution(self, ctx: OperationContext | None) -> None:
        if ctx is None:
            return
        self.coordinator.validate_ended(ctx)
        self.coordinator.execute_started(ctx)

    async def on_error(self, ctx: OperationContext | None, errors: Iterable[Any]) -> None:
        """Attach errors raised outside execution, e.g. validation errors."""
        if ctx is not None:
            self.coordinator.record_errors(ctx, errors)

    async def on_resolution(
        self,
        ctx: OperationContext | None,
        *,
        data: Any = None,
        errors: Iterable[Any] | None = None,
        status_code: int | None = None,
    ) -> GraphQLPayload | None:
        """Finish the operation and emit its record."""
        if ctx is None:
            return None
        return await self.coordinator.complete(
            ctx, data=data, errors=errors, status_code=status_code
        )

    def field_middleware(self, ctx: OperationContext | None) -> Callable[..., Any]:
        """Build a graphql-core middleware that accounts every resolver call."""
        coordinator = self.coordinator

        def middleware(next_: Callable[..., Any], root: Any, info: Any, **args: Any) -> Any:
            if ctx is None:
                return next_(root, info, **args)
            return coordinator.resolve_field(ctx, next_, root, info, **args)

        return middleware

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _tracking(self) -> SubscriptionLifecycleCoordinator | None:
        if self.subscriptions is None or not self.subscriptions.is_enabled():
            return None
        return self.subscriptions

    async def on_connection_open(
        self,
        connection_id: str,
        *,
        request: Any = None,
        protocol: str | None = None,
    ) -> None:
        subscriptions = self._tracking()
        if subscriptions is None:
            return
        info = extract_connection_info(request, connection_id) if request is not None else None
        await subscriptions.handle_connection(
            connection_id,
            ip=info.ip if info else None,
            user_agent=info.user_agent if info else None,
            protocol=protocol,
            transport_mode=ADAPTER_TRANSPORT_MODE,
        )

    async def on_connection_close(self, connection_id: str) -> None:
        subscriptions = self._tracking()
        if subscriptions is not None:
            await subscriptions.handle_disconnection(connection_id)

    async def pre_subscription_parsing(
        self,
        source: str,
        *,
        connection_id: str,
        subscription_id: str,
        operation_name: str | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> str | None:
        """Start tracking a subscription; returns its correlation id."""
        subscriptions = self._tracking()
        if subscriptions is None:
            return None
        return await subscriptions.handle_start(
            SubscriptionEvent(
                connection_id=connection_id,
                subscription_id=subscription_id,
                query=source,
                operation_name=operation_name,
                variables=dict(variables) if variables else None,
                transport_mode=ADAPTER_TRANSPORT_MODE,
            )
        )

    async def pre_subscription_execution(self, connection_id: str, subscription_id: str) -> bool:
        """Return True when the subscription is being tracked."""
        subscriptions = self._tracking()
        if subscriptions is None:
            return False
        return subscriptions.registry.get_subscription(connection_id, subscription_id) is not None

    async def on_subscription_resolution(
        self,
        connection_id: str,
        subscription_id: str,
        data: Any = None,
    ) -> None:
        """Account for one pushed message."""
        subscriptions = self._tracking()
        if subscriptions is not None:
            await subscriptions.handle_data(
                SubscriptionEvent(
                    connection_id=connection_id,
                    subscription_id=subscription_id,
                    data=data,
                    transport_mode=ADAPTER_TRANSPORT_MODE,
                )
            )

    async def on_subscription_error(
        self,
        connection_id: str,
        subscription_id: str,
        error: BaseException | str | None = None,
    ) -> None:
        subscriptions = self._tracking()
        if subscriptions is not None:
            await subscriptions.handle_error(
                SubscriptionEvent(
                    connection_id=connection_id,
                    subscription_id=subscription_id,
                    error=error,
                    transport_mode=ADAPTER_TRANSPORT_MODE,
                )
            )

    async def on_subscription_end(self, connection_id: str, subscription_id: str) -> None:
        subscriptions = self._tracking()
        if subscriptions is not None:
            await subscriptions.handle_complete(
                SubscriptionEvent(
                    connection_id=connection_id,
                    subscription_id=subscription_id,
                    transport_mode=ADAPTER_TRANSPORT_MODE,
                )
            )


__all__ = ["ADAPTER_TRANSPORT_MODE", "GraphQLHooks", "HookAdapter"]
