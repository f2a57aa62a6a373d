"""Custom exception classes for graphlens."""

from __future__ import annotations

from typing import Any


class GraphLensError(Exception):
    """Base graphlens exception.

    All custom exceptions should inherit from this class.

    Attributes:
        detail: Human-readable error message.
        type: Error type identifier.
        extra: Additional context-specific information about the error.

    Example:
            raise GraphLensError(
            detail="Observer is not initialized",
            type="observer-not-initialized",
            extra={"server": "strawberry"}
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "graphlens-error",
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize graphlens exception.

        Args:
            detail: Human-readable error message.
            type: Error type identifier.
            extra: Additional context about the error.
        """
        self.detail = detail
        self.type = type
        self.extra = extra or {}
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for structured logging."""
        payload: dict[str, Any] = {"type": self.type, "detail": self.detail}
        if self.extra:
            payload.update(self.extra)
        return payload


class AdapterUnavailableError(GraphLensError):
    """Raised when the requested host engine adapter cannot be used.

    Example:
            raise AdapterUnavailableError(
            detail="strawberry is not installed",
            extra={"server": "strawberry"}
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "adapter-unavailable",
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail=detail, type=type, extra=extra)


class ObserverNotInitializedError(GraphLensError):
    """Raised when an adapter is used before ``initialize()`` was called."""

    def __init__(
        self,
        detail: str = "Adapter has not been initialized",
        type: str = "observer-not-initialized",
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail=detail, type=type, extra=extra)


__all__ = [
    "AdapterUnavailableError",
    "GraphLensError",
    "ObserverNotInitializedError",
]
