"""GraphQL observer configuration settings.

Controls what the observer captures for queries, mutations and subscriptions,
how much of it is kept, and which host engine adapter is used.
Environment variables use GRAPHLENS_ prefix; subscription settings use
GRAPHLENS_SUBSCRIPTIONS_ prefix.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ServerKind = Literal["auto", "strawberry", "hooks"]
TransportMode = Literal["auto", "gateway", "adapter"]

DEFAULT_SENSITIVE_VARIABLES: tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "apiKey",
    "api_key",
    "accessToken",
    "access_token",
    "refreshToken",
    "refresh_token",
    "authorization",
    "apiSecret",
    "api_secret",
    "privateKey",
    "private_key",
    "creditCard",
    "credit_card",
    "ssn",
    "pin",
)


class SubscriptionSettings(BaseSettings):
    """Subscription lifecycle tracking configuration.

    Environment variables use GRAPHLENS_SUBSCRIPTIONS_ prefix.
    Example: GRAPHLENS_SUBSCRIPTIONS_TRACK_MESSAGES=true
    """

    enabled: bool = Field(
        default=True,
        description="Track subscription lifecycle events",
    )
    track_messages: bool = Field(
        default=False,
        description="Emit a record for every data message pushed to a subscriber",
    )
    capture_message_data: bool = Field(
        default=False,
        description="Include sanitized message payloads in data records",
    )
    max_tracked_messages: int = Field(
        default=100,
        ge=1,
        le=100_000,
        description="Per-subscription cap on emitted data records and buffered payloads",
    )
    track_connection_events: bool = Field(
        default=True,
        description="Register connections and count connect/disconnect events",
    )
    transport_mode: TransportMode = Field(
        default="auto",
        description="Where subscription events are captured: gateway (WebSocket) or adapter (engine hooks)",
    )
    debug: bool = Field(
        default=False,
        description="Log every subscription event at debug level",
    )

    # Registry capacity
    max_connections: int = Field(
        default=1000,
        ge=1,
        description="Maximum concurrently tracked connections (oldest evicted first)",
    )
    max_subscriptions_per_connection: int = Field(
        default=100,
        ge=1,
        description="Maximum concurrently tracked subscriptions per connection",
    )

    model_config = SettingsConfigDict(
        env_prefix="GRAPHLENS_SUBSCRIPTIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )


class GraphQLObserverSettings(BaseSettings):
    """GraphQL observer configuration.

    Environment variables use GRAPHLENS_ prefix.
    Example: GRAPHLENS_ENABLED=true, GRAPHLENS_N1_THRESHOLD=5
    """

    enabled: bool = Field(
        default=True,
        description="Enable GraphQL observation",
    )
    server: ServerKind = Field(
        default="auto",
        description="Host engine adapter: strawberry, hooks (bare graphql-core) or auto-detect",
    )

    # Query capture
    max_query_size: int = Field(
        default=8192,
        ge=64,
        le=1_048_576,
        description="Maximum stored query length before truncation",
    )
    capture_variables: bool = Field(
        default=True,
        description="Store sanitized operation variables",
    )
    sensitive_variables: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_VARIABLES),
        description="Key patterns masked in variables and responses (trailing * matches a prefix)",
    )
    ignore_introspection: bool = Field(
        default=True,
        description="Skip introspection queries",
    )
    ignore_operations: list[str] = Field(
        default_factory=list,
        description="Operation names that are never recorded",
    )

    # Field resolver tracing
    trace_field_resolvers: bool = Field(
        default=False,
        description="Record per-field resolver timings",
    )
    trace_slow_resolvers_ms: float | None = Field(
        default=None,
        ge=0,
        description="Only keep field traces at least this slow (milliseconds)",
    )
    resolver_tracing_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Fraction of operations whose resolvers are traced",
    )
    max_field_traces: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum field traces kept per operation",
    )

    # N+1 detection
    detect_n1_queries: bool = Field(
        default=True,
        description="Count resolver calls and flag N+1 patterns",
    )
    n1_threshold: int = Field(
        default=10,
        ge=2,
        description="Calls to the same parent type and field that count as N+1",
    )

    # Sampling and response capture
    sampling_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Fraction of operations that are recorded",
    )
    capture_response: bool = Field(
        default=False,
        description="Store the sanitized response data",
    )
    max_response_size: int = Field(
        default=65536,
        ge=1,
        description="Maximum serialized response size in bytes",
    )

    max_recommended_depth: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Depth above which a query depth warning is attached",
    )

    subscriptions: SubscriptionSettings = Field(
        default_factory=SubscriptionSettings,
        description="Subscription lifecycle tracking settings",
    )

    model_config = SettingsConfigDict(
        env_prefix="GRAPHLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def validate_message_capture_requires_tracking(self) -> GraphQLObserverSettings:
        """Validate that message capture is only requested alongside message tracking."""
        subs = self.subscriptions
        if subs.capture_message_data and not subs.track_messages:
            msg = "subscriptions.capture_message_data requires subscriptions.track_messages"
            raise ValueError(msg)
        return self

    @property
    def tracing_enabled(self) -> bool:
        """Check if field resolver tracing can run at all."""
        return self.trace_field_resolvers and self.resolver_tracing_sample_rate > 0

    @property
    def is_configured(self) -> bool:
        """Check if the observer is enabled."""
        return self.enabled
