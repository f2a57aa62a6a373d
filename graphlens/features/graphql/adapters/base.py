"""Engine-independent operation instrumentation.

Adapters translate their host engine's hooks into calls on an
``ExecutionCoordinator``. The coordinator owns everything that does not depend
on the engine: sampling and ignore rules, phase timings, N+1 detection, field
tracing, sanitization and building the emitted record.

Per-operation state lives in an ``OperationContext`` that the adapter passes
back on every call; nothing is attached to framework-provided objects.
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import random
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from graphql import GraphQLError

from graphlens.core.exceptions import ObserverNotInitializedError
from graphlens.core.settings import GraphQLObserverSettings
from graphlens.features.graphql.analysis.depth import calculate_depth
from graphlens.features.graphql.analysis.field_tracer import (
    NOOP_TRACER,
    FieldTracer,
    FieldTracerConfig,
    ns_to_ms,
)
from graphlens.features.graphql.analysis.n_plus_one import N1Detector
from graphlens.features.graphql.analysis.query_parser import (
    OperationFingerprint,
    is_introspection_query,
    parse_query,
)
from graphlens.features.graphql.analysis.sanitizer import sanitize_response, sanitize_variables
from graphlens.features.graphql.collector import GRAPHQL_ENTRY_KIND
from graphlens.features.graphql.metrics import (
    record_field_traces,
    record_n1_warning,
    record_operation,
    record_skipped_operation,
)
from graphlens.features.graphql.models import (
    ErrorEntry,
    FieldTraceEntry,
    GraphQLPayload,
    N1WarningEntry,
    OperationType,
    UserInfo,
)
from graphlens.features.graphql.subscriptions.transport import extract_connection_info
from graphlens.infra.logging import remove_from_log_context, set_log_context

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from graphlens.features.graphql.collector import EntryCollector
    from graphlens.features.graphql.subscriptions.lifecycle import (
        SubscriptionLifecycleCoordinator,
    )

    TagsResolver = Callable[[GraphQLPayload, Any], Iterable[str] | Awaitable[Iterable[str]]]

logger = logging.getLogger(__name__)

_USER_ID_KEYS = ("id", "_id", "user_id", "userId", "sub")
_USER_NAME_KEYS = ("name", "username", "display_name", "displayName")
_USER_EMAIL_KEYS = ("email", "email_address", "emailAddress")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def is_package_available(name: str) -> bool:
    """Return True when ``name`` can be imported, without importing it."""
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


def _lookup(source: Any, key: str) -> Any:
    value = getattr(source, key, None)
    if value is None and isinstance(source, Mapping):
        value = source.get(key)
    return value


def get_request(context: Any) -> Any:
    """Pull the HTTP request or WebSocket out of an engine context value."""
    if context is None:
        return None
    if isinstance(context, Mapping) and "request" in context:
        return context["request"]
    return getattr(context, "request", None)


def get_client_ip(request: Any) -> str | None:
    """Client address: first ``x-forwarded-for`` hop, then the peer address."""
    if request is None:
        return None
    info = extract_connection_info(request, "")
    if info.ip:
        return info.ip
    ip = _lookup(request, "ip")
    return ip if isinstance(ip, str) else None


def get_user_agent(request: Any) -> str | None:
    if request is None:
        return None
    return extract_connection_info(request, "").user_agent


def _first_present(source: Any, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = _lookup(source, key)
        if value is not None:
            return value
    return None


def extract_user(request: Any) -> UserInfo | None:
    """Read the authenticated user from a request, if one is attached.

    Starlette keeps the user in ``scope["user"]``; reading ``request.user``
    without the authentication middleware raises, so the scope is checked first.
    """
    if request is None:
        return None
    scope = getattr(request, "scope", None)
    if isinstance(scope, Mapping):
        user = scope.get("user")
    else:
        user = _lookup(request, "user")
    if user is None or getattr(user, "is_authenticated", True) is False:
        return None

    user_id = _first_present(user, _USER_ID_KEYS)
    if user_id is None:
        return None
    if not isinstance(user_id, (str, int)):
        user_id = str(user_id)
    name = _first_present(user, _USER_NAME_KEYS)
    email = _first_present(user, _USER_EMAIL_KEYS)
    return UserInfo(
        id=user_id,
        name=name if isinstance(name, str) else None,
        email=email if isinstance(email, str) else None,
    )


def build_field_path(path: Any) -> str:
    """Join a resolver path (``key``/``prev`` linked list) into ``a.0.b``."""
    keys: list[str] = []
    current = path
    while current is not None:
        keys.append(str(current.key))
        current = getattr(current, "prev", None)
    return ".".join(reversed(keys))


def extract_parent_id(root: Any) -> Any:
    if root is None:
        return None
    return _lookup(root, "id")


def normalize_error(error: Any) -> ErrorEntry:
    """Convert an engine error into the stored error shape."""
    if isinstance(error, ErrorEntry):
        return error
    if isinstance(error, GraphQLError):
        return ErrorEntry.model_validate(error.formatted)
    if isinstance(error, Mapping):
        return ErrorEntry(
            message=str(error.get("message", "")),
            path=error.get("path"),
            locations=error.get("locations"),
            extensions=error.get("extensions"),
        )
    if isinstance(error, BaseException):
        return ErrorEntry(message=str(error) or type(error).__name__)
    return ErrorEntry(message=str(error))


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class OperationContext:
    """State for one observed operation, threaded through every hook."""

    correlation_id: str
    query: str
    fingerprint: OperationFingerprint
    operation_name: str | None
    variables: dict[str, Any] | None
    request: Any
    started_ns: int
    detector: N1Detector | None = None
    tracer: Any = NOOP_TRACER
    parse_started_ns: int | None = None
    parse_ended_ns: int | None = None
    validate_started_ns: int | None = None
    validate_ended_ns: int | None = None
    execute_started_ns: int | None = None
    resolver_count: int = 0
    errors: list[Any] = field(default_factory=list)
    finished: bool = False
    payload: GraphQLPayload | None = None


def _phase_ms(start: int | None, end: int | None) -> float | None:
    if start is None or end is None:
        return None
    return ns_to_ms(end - start)


class ExecutionCoordinator:
    """Turns engine hook calls into ``GraphQLPayload`` records.

    Example:
        coordinator = ExecutionCoordinator(collector, settings)
        ctx = coordinator.begin(query, operation_name="GetUser")
        if ctx is not None:
            coordinator.execute_started(ctx)
            ...
            payload = coordinator.finish(ctx, data=result.data, errors=result.errors)
            await coordinator.emit(ctx, payload)
    """

    def __init__(
        self,
        collector: EntryCollector,
        settings: GraphQLObserverSettings | None = None,
        tags_resolver: TagsResolver | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.collector = collector
        self.settings = settings or GraphQLObserverSettings()
        self.tags_resolver = tags_resolver
        self._rng = rng
        self._tracer_config = FieldTracerConfig(
            enabled=self.settings.trace_field_resolvers,
            sample_rate=self.settings.resolver_tracing_sample_rate,
            slow_threshold_ms=self.settings.trace_slow_resolvers_ms,
            max_traces=self.settings.max_field_traces,
        )
        self._pending: set[asyncio.Task[None]] = set()

    def _should_sample(self) -> bool:
        rate = self.settings.sampling_rate
        return rate >= 1.0 or self._rng() < rate

    def begin(
        self,
        query: str | None,
        operation_name: str | None = None,
        variables: Mapping[str, Any] | None = None,
        request: Any = None,
    ) -> OperationContext | None:
        """Start observing an operation.

        Returns:
            The operation context, or None when the operation is not observed
            (observer disabled, no query text, sampled out, introspection,
            ignored by name, or a subscription, which the lifecycle
            coordinator records instead).
        """
        if not self.settings.enabled or not query:
            return None
        if not self._should_sample():
            record_skipped_operation("sampled_out")
            return None
        if self.settings.ignore_introspection and is_introspection_query(query):
            record_skipped_operation("introspection")
            return None

        fingerprint = parse_query(query, self.settings.max_query_size)
        name = operation_name or fingerprint.operation_name
        if name and name in self.settings.ignore_operations:
            record_skipped_operation("ignored")
            return None
        if fingerprint.operation_type is OperationType.SUBSCRIPTION:
            record_skipped_operation("subscription")
            return None

        started_ns = time.perf_counter_ns()
        return OperationContext(
            correlation_id=str(uuid.uuid4()),
            query=query,
            fingerprint=fingerprint,
            operation_name=name,
            variables=dict(variables) if variables else None,
            request=request,
            started_ns=started_ns,
            detector=(
                N1Detector(self.settings.n1_threshold) if self.settings.detect_n1_queries else None
            ),
            tracer=(
                FieldTracer(started_ns, self._tracer_config, rng=self._rng)
                if self.settings.trace_field_resolvers
                else NOOP_TRACER
            ),
        )

    # Phase boundaries. Engines that do not expose a phase simply never call
    # its methods and the matching duration stays None.

    def parse_started(self, ctx: OperationContext) -> None:
        ctx.parse_started_ns = time.perf_counter_ns()

    def parse_ended(self, ctx: OperationContext) -> None:
        ctx.parse_ended_ns = time.perf_counter_ns()

    def validate_started(self, ctx: OperationContext) -> None:
        ctx.validate_started_ns = time.perf_counter_ns()

    def validate_ended(self, ctx: OperationContext) -> None:
        ctx.validate_ended_ns = time.perf_counter_ns()

    def execute_started(self, ctx: OperationContext) -> None:
        ctx.execute_started_ns = time.perf_counter_ns()

    def field_started(
        self,
        ctx: OperationContext,
        path: str,
        parent_type: str,
        field_name: str,
        return_type: str,
        parent_id: Any = None,
    ) -> int | None:
        """Account for one resolver call; returns a trace token or None."""
        ctx.resolver_count += 1
        if ctx.detector is not None:
            ctx.detector.record_call(parent_type, field_name, parent_id)
        return ctx.tracer.start_field(path, parent_type, field_name, return_type)

    def field_ended(self, ctx: OperationContext, token: int | None) -> None:
        ctx.tracer.end_field(token)

    def resolve_field(
        self,
        ctx: OperationContext,
        next_: Callable[..., Any],
        root: Any,
        info: Any,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run a resolver through ``next_`` while accounting for it.

        ``info`` is a graphql-core ``GraphQLResolveInfo``. Awaitable results
        are timed until they settle.
        """
        token = self.field_started(
            ctx,
            build_field_path(info.path),
            info.parent_type.name,
            info.field_name,
            str(info.return_type),
            parent_id=extract_parent_id(root),
        )
        try:
            result = next_(root, info, *args, **kwargs)
        except Exception:
            self.field_ended(ctx, token)
            raise
        if inspect.isawaitable(result):
            return self._await_field(ctx, token, result)
        self.field_ended(ctx, token)
        return result

    async def _await_field(
        self,
        ctx: OperationContext,
        token: int | None,
        result: Awaitable[Any],
    ) -> Any:
        try:
            return await result
        finally:
            self.field_ended(ctx, token)

    def record_errors(self, ctx: OperationContext, errors: Iterable[Any] | None) -> None:
        if errors:
            ctx.errors.extend(errors)

    def finish(
        self,
        ctx: OperationContext,
        data: Any = None,
        errors: Iterable[Any] | None = None,
        status_code: int | None = None,
    ) -> GraphQLPayload | None:
        """Build the record for a finished operation.

        Returns None when the context was already finished, so a record is
        produced at most once per operation.
        """
        if ctx.finished:
            return None
        ctx.finished = True
        ended_ns = time.perf_counter_ns()
        self.record_errors(ctx, errors)

        settings = self.settings
        fingerprint = ctx.fingerprint
        error_entries = [normalize_error(e) for e in ctx.errors]
        has_errors = bool(error_entries)
        depth = calculate_depth(ctx.query, settings.max_recommended_depth)

        n1_warnings: list[N1WarningEntry] = []
        if ctx.detector is not None:
            for warning in ctx.detector.detect().warnings:
                record_n1_warning(warning.parent_type, warning.field)
                n1_warnings.append(
                    N1WarningEntry(
                        field=warning.field,
                        parent_type=warning.parent_type,
                        count=warning.count,
                        suggestion=warning.suggestion,
                    )
                )

        traces: list[FieldTraceEntry] = []
        if ctx.tracer.is_active():
            traces = [
                FieldTraceEntry(
                    path=t.path,
                    parent_type=t.parent_type,
                    field_name=t.field_name,
                    return_type=t.return_type,
                    start_offset=t.start_offset,
                    duration=t.duration,
                )
                for t in ctx.tracer.get_traces()
            ]
            record_field_traces(len(traces))

        response_data = None
        if settings.capture_response and data is not None:
            response_data = sanitize_response(
                data, settings.sensitive_variables, settings.max_response_size
            )

        payload = GraphQLPayload(
            operation_name=ctx.operation_name,
            operation_type=fingerprint.operation_type,
            query=fingerprint.query,
            query_hash=fingerprint.hash,
            variables=(
                sanitize_variables(ctx.variables, settings.sensitive_variables)
                if settings.capture_variables
                else None
            ),
            duration=ns_to_ms(ended_ns - ctx.started_ns),
            parsing_duration=_phase_ms(ctx.parse_started_ns, ctx.parse_ended_ns),
            validation_duration=_phase_ms(ctx.validate_started_ns, ctx.validate_ended_ns),
            execution_duration=_phase_ms(ctx.execute_started_ns, ended_ns),
            status_code=status_code or (400 if has_errors else 200),
            has_errors=has_errors,
            errors=error_entries or None,
            response_data=response_data,
            resolver_count=ctx.resolver_count,
            field_count=fingerprint.field_count if depth.max_depth > 0 else None,
            depth_reached=depth.max_depth,
            potential_n1=n1_warnings or None,
            ip=get_client_ip(ctx.request),
            user_agent=get_user_agent(ctx.request),
            user=extract_user(ctx.request),
            field_traces=traces or None,
            depth_warnings=depth.warnings or None,
        )
        ctx.payload = payload

        record_operation(payload.operation_type, has_errors=has_errors, duration_ms=payload.duration)
        set_log_context(graphql_correlation_id=ctx.correlation_id)
        try:
            logger.debug(
                "GraphQL operation observed",
                extra={
                    "operation_name": payload.operation_name,
                    "operation_type": payload.operation_type,
                    "duration_ms": round(payload.duration, 3),
                    "has_errors": has_errors,
                },
            )
        finally:
            remove_from_log_context("graphql_correlation_id")
        return payload

    async def _resolve_tags(self, payload: GraphQLPayload, request: Any) -> list[str]:
        if self.tags_resolver is None:
            return []
        try:
            tags = self.tags_resolver(payload, request)
            if inspect.isawaitable(tags):
                tags = await tags
            return [str(tag) for tag in tags or ()]
        except Exception:
            logger.debug("Tag resolver failed", exc_info=True)
            return []

    async def emit(self, ctx: OperationContext, payload: GraphQLPayload) -> None:
        """Hand a finished record to the collector; failures are logged, not raised."""
        payload.tags = await self._resolve_tags(payload, ctx.request)
        try:
            if payload.has_errors:
                await self.collector.collect_immediate(
                    GRAPHQL_ENTRY_KIND, payload, ctx.correlation_id
                )
            else:
                await self.collector.collect(GRAPHQL_ENTRY_KIND, payload, ctx.correlation_id)
        except Exception:
            logger.exception(
                "Failed to collect GraphQL entry",
                extra={"correlation_id": ctx.correlation_id},
            )

    async def complete(
        self,
        ctx: OperationContext,
        data: Any = None,
        errors: Iterable[Any] | None = None,
        status_code: int | None = None,
    ) -> GraphQLPayload | None:
        """``finish`` then ``emit``, for hosts that can await."""
        payload = self.finish(ctx, data=data, errors=errors, status_code=status_code)
        if payload is not None:
            await self.emit(ctx, payload)
        return payload

    def dispatch(self, ctx: OperationContext, payload: GraphQLPayload) -> None:
        """Emit from synchronous engine hooks.

        Inside a running event loop the emit is scheduled as a task; otherwise
        it runs to completion before returning.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.emit(ctx, payload))
            return
        task = loop.create_task(self.emit(ctx, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled emit to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


# ---------------------------------------------------------------------------
# Adapter interface
# ---------------------------------------------------------------------------


class BaseGraphQLAdapter(ABC):
    """Bridge between a host GraphQL engine and the execution coordinator."""

    type: ClassVar[str]

    def __init__(self) -> None:
        self._coordinator: ExecutionCoordinator | None = None
        self.subscriptions: SubscriptionLifecycleCoordinator | None = None

    @abstractmethod
    def is_available(self) -> bool:
        """Return True when the host engine package is importable."""

    def initialize(
        self,
        settings: GraphQLObserverSettings,
        collector: EntryCollector,
        subscriptions: SubscriptionLifecycleCoordinator | None = None,
        tags_resolver: TagsResolver | None = None,
    ) -> None:
        self._coordinator = ExecutionCoordinator(collector, settings, tags_resolver)
        self.subscriptions = subscriptions
        logger.debug("GraphQL adapter initialized", extra={"adapter": self.type})

    @property
    def coordinator(self) -> ExecutionCoordinator:
        if self._coordinator is None:
            raise ObserverNotInitializedError(extra={"adapter": self.type})
        return self._coordinator

    @property
    def is_initialized(self) -> bool:
        return self._coordinator is not None

    @abstractmethod
    def get_plugin(self) -> Any:
        """Return the object the host engine registers."""

    def destroy(self) -> None:
        self._coordinator = None
        self.subscriptions = None


__all__ = [
    "BaseGraphQLAdapter",
    "ExecutionCoordinator",
    "OperationContext",
    "build_field_path",
    "extract_parent_id",
    "extract_user",
    "get_client_ip",
    "get_request",
    "get_user_agent",
    "is_package_available",
    "normalize_error",
]
