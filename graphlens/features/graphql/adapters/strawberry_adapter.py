"""Strawberry integration.

``StrawberryAdapter.get_plugin()`` returns a ``SchemaExtension`` subclass bound
to an execution coordinator. Strawberry instantiates the class once per
operation, so the per-operation context lives on the extension instance.

Usage:
    watcher = GraphQLWatcher(collector)
    schema = strawberry.Schema(query=Query, extensions=[watcher.get_plugin()])

Subscriptions are not recorded here; wrap the WebSocket with
``ObservedWebSocket`` or use the gateway handlers instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from strawberry.extensions import SchemaExtension

from .base import BaseGraphQLAdapter, get_request, is_package_available

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .base import ExecutionCoordinator, OperationContext


class ObserverExtension(SchemaExtension):
    """Records one operation per Strawberry execution."""

    coordinator: ClassVar[ExecutionCoordinator]
    _operation: OperationContext | None = None

    def on_operation(self) -> Iterator[None]:
        execution_context = self.execution_context
        self._operation = self.coordinator.begin(
            execution_context.query,
            operation_name=getattr(execution_context, "operation_name", None),
            variables=execution_context.variables,
            request=get_request(execution_context.context),
        )
        yield
        ctx = self._operation
        if ctx is None:
            return

        result = execution_context.result
        errors = getattr(result, "errors", None) or getattr(
            execution_context, "pre_execution_errors", None
        )
        payload = self.coordinator.finish(
            ctx,
            data=getattr(result, "data", None),
            errors=errors,
        )
        if payload is not None:
            self.coordinator.dispatch(ctx, payload)

    def on_parse(self) -> Iterator[None]:
        if self._operation is not None:
            self.coordinator.parse_started(self._operation)
        yield
        if self._operation is not None:
            self.coordinator.parse_ended(self._operation)

    def on_validate(self) -> Iterator[None]:
        if self._operation is not None:
            self.coordinator.validate_started(self._operation)
        yield
        if self._operation is not None:
            self.coordinator.validate_ended(self._operation)

    def on_execute(self) -> Iterator[None]:
        if self._operation is not None:
            self.coordinator.execute_started(self._operation)
        yield

    def resolve(
        self,
        _next: Callable[..., Any],
        root: Any,
        info: Any,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        if self._operation is None:
            return _next(root, info, *args, **kwargs)
        return self.coordinator.resolve_field(self._operation, _next, root, info, *args, **kwargs)


class StrawberryAdapter(BaseGraphQLAdapter):
    type: ClassVar[str] = "strawberry"

    def is_available(self) -> bool:
        return is_package_available("strawberry")

    def get_plugin(self) -> type[ObserverExtension]:
        """Return an extension class for ``strawberry.Schema(extensions=[...])``."""
        return type(
            "GraphLensExtension",
            (ObserverExtension,),
            {"coordinator": self.coordinator},
        )


__all__ = ["ObserverExtension", "StrawberryAdapter"]
