"""Record schemas emitted to the entry sink.

Field names are snake_case in Python and dump to camelCase, which is the
shape the dashboard and entry store read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OperationType(str, Enum):
    """GraphQL operation kinds."""

    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


class SubscriptionEventKind(str, Enum):
    """Lifecycle events recorded for a subscription."""

    START = "start"
    DATA = "data"
    ERROR = "error"
    COMPLETE = "complete"


class EntryBase(BaseModel):
    """Base model shared by every emitted record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    def to_entry(self) -> dict[str, Any]:
        """Dump with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorEntry(EntryBase):
    """A GraphQL error as stored on a record."""

    message: str
    path: list[str | int] | None = None
    locations: list[dict[str, int]] | None = None
    extensions: dict[str, Any] | None = None


class N1WarningEntry(EntryBase):
    """A resolver that was called often enough to look like an N+1 pattern."""

    field: str
    parent_type: str
    count: int
    suggestion: str


class FieldTraceEntry(EntryBase):
    """Timing of one resolved field, in nanoseconds."""

    path: str
    parent_type: str
    field_name: str
    return_type: str
    start_offset: int
    duration: int


class UserInfo(EntryBase):
    """Authenticated user extracted from the host request."""

    id: str | int | None = None
    name: str | None = None
    email: str | None = None


class GraphQLPayload(EntryBase):
    """Record of one observed operation or subscription lifecycle event.

    Example:
        payload = GraphQLPayload(
            operation_type="query",
            query="query GetUser { user { id } }",
            query_hash="1a2b3c4d",
            duration=12.5,
        )
        payload.to_entry()["queryHash"]  # "1a2b3c4d"
    """

    operation_name: str | None = None
    operation_type: OperationType = OperationType.QUERY
    query: str
    query_hash: str
    variables: dict[str, Any] | None = None

    # Timings in milliseconds; phases the host does not report stay None
    duration: float = 0.0
    parsing_duration: float | None = None
    validation_duration: float | None = None
    execution_duration: float | None = None

    status_code: int = 200
    has_errors: bool = False
    errors: list[ErrorEntry] | None = None
    response_data: Any | None = None

    resolver_count: int = 0
    field_count: int | None = None
    depth_reached: int | None = None
    potential_n1: list[N1WarningEntry] | None = None

    ip: str | None = None
    user_agent: str | None = None
    user: UserInfo | None = None

    subscription_id: str | None = None
    subscription_event: SubscriptionEventKind | None = None
    message_count: int | None = None
    subscription_duration: float | None = None

    field_traces: list[FieldTraceEntry] | None = None
    depth_warnings: list[str] | None = None
    tags: list[str] = Field(default_factory=list)


__all__ = [
    "EntryBase",
    "ErrorEntry",
    "FieldTraceEntry",
    "GraphQLPayload",
    "N1WarningEntry",
    "OperationType",
    "SubscriptionEventKind",
    "UserInfo",
]
