"""Sampled per-field resolver timing.

A tracer is created per operation. One Bernoulli trial at construction decides
whether that operation is traced at all, so untraced operations pay only a
boolean check per field.

Example:
    tracer = FieldTracer(time.perf_counter_ns(), FieldTracerConfig(enabled=True, sample_rate=1.0))
    token = tracer.start_field("user.posts", "User", "posts", "[Post!]!")
    ...
    tracer.end_field(token)
    tracer.get_traces()
"""

from __future__ import annotations

import itertools
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(frozen=True, slots=True)
class FieldTracerConfig:
    """Tracing knobs for one operation.

    Attributes:
        enabled: Master switch; a disabled tracer never samples.
        sample_rate: Probability that an operation is traced (0.0 - 1.0).
        slow_threshold_ms: Discard traces faster than this many milliseconds.
        max_traces: Maximum traces kept per operation.
    """

    enabled: bool = False
    sample_rate: float = 0.1
    slow_threshold_ms: float | None = None
    max_traces: int = 100


@dataclass(frozen=True, slots=True)
class FieldTrace:
    """Timing of one resolved field; offsets and durations are nanoseconds."""

    path: str
    parent_type: str
    field_name: str
    return_type: str
    start_offset: int
    duration: int


@dataclass(frozen=True, slots=True)
class TraceStats:
    total_traces: int = 0
    total_duration: int = 0
    avg_duration: float = 0.0
    max_duration: int = 0
    slowest_field: str | None = None


@dataclass(frozen=True, slots=True)
class WaterfallItem:
    path: str
    start_ms: float
    duration_ms: float
    percent_of_total: float
    depth: int


@dataclass(slots=True)
class _ActiveTrace:
    path: str
    parent_type: str
    field_name: str
    return_type: str
    start_ns: int
    start_offset: int


class FieldTracer:
    """Collects field timings for a single operation."""

    def __init__(
        self,
        request_start_ns: int,
        config: FieldTracerConfig | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the tracer and decide whether this operation is sampled.

        Args:
            request_start_ns: ``time.perf_counter_ns()`` at operation start.
            config: Tracing configuration; defaults to a disabled tracer.
            rng: Source of uniform floats in [0, 1) for the sampling decision.
        """
        self.config = config or FieldTracerConfig()
        self._request_start_ns = request_start_ns
        self._traces: list[FieldTrace] = []
        self._active: dict[int, _ActiveTrace] = {}
        self._tokens = itertools.count(1)
        self._should_trace = self.config.enabled and rng() < self.config.sample_rate

    def is_active(self) -> bool:
        return self._should_trace

    def start_field(
        self,
        path: str,
        parent_type: str,
        field_name: str,
        return_type: str,
    ) -> int | None:
        """Start timing a field.

        Returns:
            An opaque token for ``end_field``, or None when the operation is
            not sampled or the trace cap is already reached.
        """
        if not self._should_trace or len(self._traces) >= self.config.max_traces:
            return None

        now = time.perf_counter_ns()
        token = next(self._tokens)
        self._active[token] = _ActiveTrace(
            path=path,
            parent_type=parent_type,
            field_name=field_name,
            return_type=return_type,
            start_ns=now,
            start_offset=now - self._request_start_ns,
        )
        return token

    def end_field(self, token: int | None) -> None:
        """Stop timing a field; unknown or None tokens are ignored."""
        if token is None or not self._should_trace:
            return
        active = self._active.pop(token, None)
        if active is None:
            return

        duration = time.perf_counter_ns() - active.start_ns
        threshold = self.config.slow_threshold_ms
        if threshold is not None and duration / 1_000_000 < threshold:
            return
        if len(self._traces) >= self.config.max_traces:
            return

        self._traces.append(
            FieldTrace(
                path=active.path,
                parent_type=active.parent_type,
                field_name=active.field_name,
                return_type=active.return_type,
                start_offset=active.start_offset,
                duration=duration,
            )
        )

    def get_traces(self) -> list[FieldTrace]:
        """Return recorded traces ordered by start offset."""
        return sorted(self._traces, key=lambda t: t.start_offset)

    def get_stats(self) -> TraceStats:
        if not self._traces:
            return TraceStats()
        total = sum(t.duration for t in self._traces)
        slowest = max(self._traces, key=lambda t: t.duration)
        return TraceStats(
            total_traces=len(self._traces),
            total_duration=total,
            avg_duration=total / len(self._traces),
            max_duration=slowest.duration,
            slowest_field=slowest.path,
        )

    def clear(self) -> None:
        self._traces.clear()
        self._active.clear()


class _NoopTracer:
    """Stand-in used when tracing is switched off entirely."""

    def is_active(self) -> bool:
        return False

    def start_field(self, *args: Any, **kwargs: Any) -> None:
        return None

    def end_field(self, token: int | None) -> None:
        return None

    def get_traces(self) -> list[FieldTrace]:
        return []

    def get_stats(self) -> TraceStats:
        return TraceStats()

    def clear(self) -> None:
        return None


NOOP_TRACER = _NoopTracer()


def ns_to_ms(nanoseconds: float) -> float:
    return nanoseconds / 1_000_000


def format_trace_duration(nanoseconds: float) -> str:
    """Render a duration with the largest sensible unit.

    Example:
        >>> format_trace_duration(1_500_000)
        '1.50ms'
    """
    if nanoseconds < 1_000:
        return f"{nanoseconds:g}ns"
    if nanoseconds < 1_000_000:
        return f"{nanoseconds / 1_000:.2f}µs"
    if nanoseconds < 1_000_000_000:
        return f"{nanoseconds / 1_000_000:.2f}ms"
    return f"{nanoseconds / 1_000_000_000:.2f}s"


def build_waterfall(traces: list[FieldTrace], total_duration_ns: int) -> list[WaterfallItem]:
    """Project traces onto a waterfall in milliseconds.

    ``depth`` counts ``.`` separators in the path, so list indices add a level.
    """
    total_ms = ns_to_ms(total_duration_ns)
    return [
        WaterfallItem(
            path=trace.path,
            start_ms=ns_to_ms(trace.start_offset),
            duration_ms=ns_to_ms(trace.duration),
            percent_of_total=(ns_to_ms(trace.duration) / total_ms) * 100 if total_ms > 0 else 0.0,
            depth=trace.path.count("."),
        )
        for trace in traces
    ]


__all__ = [
    "NOOP_TRACER",
    "FieldTrace",
    "FieldTracer",
    "FieldTracerConfig",
    "TraceStats",
    "WaterfallItem",
    "build_waterfall",
    "format_trace_duration",
    "ns_to_ms",
]
