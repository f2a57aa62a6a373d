"""Tests for the hook adapter driven by bare graphql-core."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest
from graphql import build_schema, execute, parse, validate

from graphlens.core.exceptions import ObserverNotInitializedError
from graphlens.core.settings import GraphQLObserverSettings
from graphlens.features.graphql.adapters.hook_adapter import (
    ADAPTER_TRANSPORT_MODE,
    GraphQLHooks,
    HookAdapter,
)
from graphlens.features.graphql.collector import MemoryEntryCollector
from graphlens.features.graphql.subscriptions.lifecycle import SubscriptionLifecycleCoordinator

SCHEMA = build_schema(
    """
    type Author { name: String }
    type Post { id: ID! title: String author: Author }
    type Query { posts: [Post] fail: String }
    """
)


def _fail(info: Any) -> str:
    raise ValueError("boom")


ROOT = {
    "posts": [{"id": str(i), "title": f"Post {i}", "author": {"name": "Ada"}} for i in range(10)],
    "fail": _fail,
}


async def run_operation(hooks: GraphQLHooks, source: str, **kwargs: Any) -> Any:
    """Drive one operation through every hook the way a host would."""
    ctx = await hooks.pre_parsing(source, **kwargs)
    document = parse(source)
    await hooks.pre_validation(ctx)
    errors = validate(SCHEMA, document)
    if errors:
        await hooks.on_error(ctx, errors)
        return await hooks.on_resolution(ctx)
    await hooks.pre_execution(ctx)
    result = execute(SCHEMA, document, root_value=ROOT, middleware=[hooks.field_middleware(ctx)])
    if inspect.isawaitable(result):
        result = await result
    return await hooks.on_resolution(ctx, data=result.data, errors=result.errors)


@pytest.fixture
def make_adapter(
    memory_collector: MemoryEntryCollector,
    make_settings: Callable[..., GraphQLObserverSettings],
) -> Callable[..., HookAdapter]:
    """Factory for initialized adapters, optionally with subscription tracking."""

    def factory(with_subscriptions: bool = False, **overrides: Any) -> HookAdapter:
        settings = make_settings(**overrides)
        subscriptions = (
            SubscriptionLifecycleCoordinator(memory_collector, settings) if with_subscriptions else None
        )
        adapter = HookAdapter()
        adapter.initialize(settings, memory_collector, subscriptions=subscriptions)
        return adapter

    return factory


class TestHookAdapter:
    """Test adapter wiring."""

    def test_is_available(self) -> None:
        """Test graphql-core is detected."""
        assert HookAdapter().is_available() is True

    def test_plugin_requires_initialize(self) -> None:
        """Test hooks cannot be built before initialize."""
        with pytest.raises(ObserverNotInitializedError):
            HookAdapter().get_plugin()

    def test_destroy(self, make_adapter: Callable[..., HookAdapter]) -> None:
        """Test destroy detaches the coordinator."""
        adapter = make_adapter()
        adapter.destroy()

        assert adapter.is_initialized is False


class TestOperationHooks:
    """Test operation hooks with graphql-core."""

    @pytest.mark.asyncio
    async def test_full_operation(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test every phase is timed and resolvers are counted."""
        hooks = make_adapter().get_plugin()
        request = SimpleNamespace(headers={"user-agent": "hooks"}, client=SimpleNamespace(host="10.2.3.4"))

        payload = await run_operation(
            hooks,
            "query Posts { posts { id title author { name } } }",
            context={"request": request},
        )

        assert payload is memory_collector.payloads()[0]
        assert payload.operation_name == "Posts"
        assert payload.parsing_duration is not None
        assert payload.validation_duration is not None
        assert payload.execution_duration is not None
        assert payload.resolver_count == 41
        assert payload.ip == "10.2.3.4"
        assert payload.user_agent == "hooks"
        fields = {(w.parent_type, w.field) for w in payload.potential_n1}
        assert ("Post", "author") in fields
        assert ("Author", "name") in fields

    @pytest.mark.asyncio
    async def test_resolver_error(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test execution errors become an immediate error record."""
        hooks = make_adapter().get_plugin()

        payload = await run_operation(hooks, "query Fail { fail }")

        assert payload.status_code == 400
        assert payload.errors[0].message == "boom"
        assert memory_collector.entries[0].immediate is True

    @pytest.mark.asyncio
    async def test_validation_error(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test errors attached before execution are recorded."""
        hooks = make_adapter().get_plugin()

        payload = await run_operation(hooks, "query Broken { nope }")

        assert payload.has_errors is True
        assert payload.execution_duration is None
        assert memory_collector.payloads() == [payload]

    @pytest.mark.asyncio
    async def test_skipped_operation_flows_through(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test hooks accept a None context for unobserved operations."""
        hooks = make_adapter(ignore_operations=["Posts"]).get_plugin()

        payload = await run_operation(hooks, "query Posts { posts { id } }")

        assert payload is None
        assert memory_collector.payloads() == []


class TestSubscriptionHooks:
    """Test subscription hooks feeding the lifecycle coordinator."""

    @pytest.mark.asyncio
    async def test_subscription_lifecycle(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test open, start, data, end and close."""
        adapter = make_adapter(with_subscriptions=True, sub_track_messages=True)
        hooks = adapter.get_plugin()
        request = SimpleNamespace(headers={"user-agent": "ws"}, client=SimpleNamespace(host="10.9.9.9"))

        await hooks.on_connection_open("c1", request=request, protocol="graphql-ws")
        correlation_id = await hooks.pre_subscription_parsing(
            "subscription OnPost { post { id } }",
            connection_id="c1",
            subscription_id="s1",
            operation_name="OnPost",
        )
        tracked = await hooks.pre_subscription_execution("c1", "s1")
        await hooks.on_subscription_resolution("c1", "s1", {"post": {"id": "1"}})
        await hooks.on_subscription_end("c1", "s1")
        await hooks.on_connection_close("c1")

        assert correlation_id is not None
        assert tracked is True
        assert await hooks.pre_subscription_execution("c1", "other") is False
        events = [p.subscription_event for p in memory_collector.payloads()]
        assert events == ["start", "data", "complete"]
        assert {e.correlation_id for e in memory_collector.entries} == {correlation_id}
        assert memory_collector.payloads()[0].ip == "10.9.9.9"
        metrics = adapter.subscriptions.get_metrics()
        assert metrics.by_transport_mode[ADAPTER_TRANSPORT_MODE] == 1
        assert metrics.total_disconnections == 1

    @pytest.mark.asyncio
    async def test_subscription_error(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test a subscription error is recorded immediately."""
        hooks = make_adapter(with_subscriptions=True).get_plugin()

        await hooks.on_connection_open("c1")
        await hooks.pre_subscription_parsing("subscription { post { id } }", connection_id="c1", subscription_id="s1")
        await hooks.on_subscription_error("c1", "s1", RuntimeError("stream died"))

        entry = memory_collector.entries[-1]
        assert entry.immediate is True
        assert entry.payload.errors[0].message == "stream died"

    @pytest.mark.asyncio
    async def test_without_subscription_tracking(
        self,
        make_adapter: Callable[..., HookAdapter],
        memory_collector: MemoryEntryCollector,
    ) -> None:
        """Test subscription hooks are inert without a lifecycle coordinator."""
        hooks = make_adapter().get_plugin()

        await hooks.on_connection_open("c1")
        correlation_id = await hooks.pre_subscription_parsing(
            "subscription { post { id } }", connection_id="c1", subscription_id="s1"
        )

        assert correlation_id is None
        assert await hooks.pre_subscription_execution("c1", "s1") is False
        assert memory_collector.payloads() == []
