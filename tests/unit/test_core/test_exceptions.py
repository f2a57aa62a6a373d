"""Tests for core exceptions."""

from graphlens.core import exceptions as exc


def test_graphlens_error_defaults() -> None:
    error = exc.GraphLensError(detail="bad")
    assert error.type == "graphlens-error"
    assert error.extra == {}
    assert str(error) == "bad"


def test_adapter_unavailable_fields() -> None:
    error = exc.AdapterUnavailableError(
        detail="strawberry is not installed",
        extra={"server": "strawberry"},
    )
    assert isinstance(error, exc.GraphLensError)
    assert error.type == "adapter-unavailable"
    assert error.extra["server"] == "strawberry"


def test_observer_not_initialized_default_detail() -> None:
    error = exc.ObserverNotInitializedError(extra={"adapter": "hooks"})
    assert error.detail == "Adapter has not been initialized"
    assert error.type == "observer-not-initialized"


def test_to_dict_merges_extra() -> None:
    error = exc.AdapterUnavailableError(detail="missing", extra={"package": "graphql"})
    assert error.to_dict() == {
        "type": "adapter-unavailable",
        "detail": "missing",
        "package": "graphql",
    }
