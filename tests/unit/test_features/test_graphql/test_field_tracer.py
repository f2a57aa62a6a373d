"""Unit tests for sampled field resolver tracing."""

from __future__ import annotations

import time

import pytest

from graphlens.features.graphql.analysis.field_tracer import (
    NOOP_TRACER,
    FieldTrace,
    FieldTracer,
    FieldTracerConfig,
    build_waterfall,
    format_trace_duration,
    ns_to_ms,
)


def _tracer(**config: object) -> FieldTracer:
    return FieldTracer(
        time.perf_counter_ns(),
        FieldTracerConfig(**{"enabled": True, "sample_rate": 1.0, **config}),
    )


class TestSampling:
    """Test the per-operation sampling decision."""

    def test_sample_rate_zero_records_nothing(self) -> None:
        """Test a zero sample rate never traces."""
        tracer = FieldTracer(time.perf_counter_ns(), FieldTracerConfig(enabled=True, sample_rate=0.0))

        token = tracer.start_field("user", "Query", "user", "User")
        tracer.end_field(token)

        assert tracer.is_active() is False
        assert token is None
        assert tracer.get_traces() == []

    def test_sample_rate_one_records_everything(self) -> None:
        """Test a sample rate of one with a zero threshold keeps every field."""
        tracer = _tracer(slow_threshold_ms=0)

        for path in ("user", "user.name", "user.email"):
            tracer.end_field(tracer.start_field(path, "User", path.rsplit(".", 1)[-1], "String"))

        assert tracer.is_active() is True
        assert [t.path for t in tracer.get_traces()] == ["user", "user.name", "user.email"]

    def test_rng_decides_sampling(self) -> None:
        """Test the injected random source drives the decision."""
        config = FieldTracerConfig(enabled=True, sample_rate=0.5)

        assert FieldTracer(0, config, rng=lambda: 0.49).is_active() is True
        assert FieldTracer(0, config, rng=lambda: 0.5).is_active() is False

    def test_disabled_config_never_samples(self) -> None:
        """Test a disabled tracer ignores the sample rate."""
        tracer = FieldTracer(0, FieldTracerConfig(enabled=False, sample_rate=1.0))
        assert tracer.is_active() is False


class TestRecording:
    """Test trace recording rules."""

    def test_trace_offsets_and_duration(self) -> None:
        """Test offsets are relative to the operation start."""
        start = time.perf_counter_ns()
        tracer = FieldTracer(start, FieldTracerConfig(enabled=True, sample_rate=1.0))

        token = tracer.start_field("user", "Query", "user", "User")
        tracer.end_field(token)
        trace = tracer.get_traces()[0]

        assert trace.start_offset >= 0
        assert trace.duration >= 0
        assert trace.parent_type == "Query"
        assert trace.return_type == "User"

    def test_slow_threshold_discards_fast_fields(self) -> None:
        """Test fields faster than the threshold are dropped."""
        tracer = _tracer(slow_threshold_ms=60_000)

        tracer.end_field(tracer.start_field("user", "Query", "user", "User"))

        assert tracer.get_traces() == []

    def test_max_traces_cap(self) -> None:
        """Test no more than max_traces are kept."""
        tracer = _tracer(max_traces=2)

        tokens = []
        for i in range(5):
            token = tracer.start_field(f"f{i}", "Query", f"f{i}", "Int")
            tracer.end_field(token)
            tokens.append(token)

        assert len(tracer.get_traces()) == 2
        assert tokens[2:] == [None, None, None]

    def test_unknown_token_ignored(self) -> None:
        """Test ending an unknown token is harmless."""
        tracer = _tracer()
        tracer.end_field(12345)
        tracer.end_field(None)

        assert tracer.get_traces() == []

    def test_stats(self) -> None:
        """Test statistics over recorded traces."""
        tracer = _tracer()
        for path in ("a", "b"):
            tracer.end_field(tracer.start_field(path, "Query", path, "Int"))

        stats = tracer.get_stats()

        assert stats.total_traces == 2
        assert stats.max_duration >= 0
        assert stats.slowest_field in {"a", "b"}

    def test_clear(self) -> None:
        """Test clear drops traces and open fields."""
        tracer = _tracer()
        tracer.end_field(tracer.start_field("a", "Query", "a", "Int"))
        tracer.clear()

        assert tracer.get_traces() == []
        assert tracer.get_stats().total_traces == 0


class TestNoopTracer:
    """Test the disabled stand-in."""

    def test_noop_tracer(self) -> None:
        """Test the no-op tracer never records."""
        assert NOOP_TRACER.is_active() is False
        assert NOOP_TRACER.start_field("a", "Query", "a", "Int") is None
        assert NOOP_TRACER.get_traces() == []


class TestHelpers:
    """Test formatting and waterfall helpers."""

    def test_ns_to_ms(self) -> None:
        """Test nanosecond conversion."""
        assert ns_to_ms(1_500_000) == pytest.approx(1.5)

    @pytest.mark.parametrize(
        ("nanoseconds", "expected"),
        [(500, "500ns"), (1_500, "1.50µs"), (1_500_000, "1.50ms"), (2_000_000_000, "2.00s")],
    )
    def test_format_trace_duration(self, nanoseconds: int, expected: str) -> None:
        """Test unit selection."""
        assert format_trace_duration(nanoseconds) == expected

    def test_build_waterfall(self) -> None:
        """Test waterfall projection and depth by path separators."""
        traces = [
            FieldTrace("user", "Query", "user", "User", start_offset=0, duration=2_000_000),
            FieldTrace("user.posts.0.title", "Post", "title", "String", 1_000_000, 500_000),
        ]

        waterfall = build_waterfall(traces, total_duration_ns=4_000_000)

        assert waterfall[0].percent_of_total == pytest.approx(50.0)
        assert waterfall[0].depth == 0
        assert waterfall[1].start_ms == pytest.approx(1.0)
        assert waterfall[1].depth == 3

    def test_build_waterfall_zero_total(self) -> None:
        """Test a zero total duration does not divide by zero."""
        traces = [FieldTrace("a", "Query", "a", "Int", 0, 10)]
        assert build_waterfall(traces, 0)[0].percent_of_total == 0.0
