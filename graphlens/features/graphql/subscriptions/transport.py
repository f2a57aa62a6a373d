"""WebSocket transport capture for GraphQL subscriptions.

Understands both wire protocols in use:

- ``graphql-transport-ws`` (the ``graphql-ws`` library), reported as
  ``"graphql-ws"``;
- the legacy Apollo ``subscriptions-transport-ws`` protocol, whose WebSocket
  subprotocol is confusingly also named ``graphql-ws``.

``WsMessageInterceptor`` maps protocol messages onto the lifecycle
coordinator. ``ObservedWebSocket`` wraps a Starlette ``WebSocket`` so that
every JSON frame in either direction passes through the interceptor.

Example:
    @app.websocket("/graphql")
    async def graphql_ws(websocket: WebSocket) -> None:
        ws = ObservedWebSocket(websocket, interceptor)
        await ws.accept(subprotocol="graphql-transport-ws")
        async for message in ws.iter_json():
            ...
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from starlette.websockets import WebSocketDisconnect

from graphlens.features.graphql.subscriptions.lifecycle import SubscriptionEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from starlette.websockets import WebSocket

    from graphlens.features.graphql.subscriptions.lifecycle import (
        SubscriptionLifecycleCoordinator,
    )

logger = logging.getLogger(__name__)

GRAPHQL_WS = "graphql-ws"
SUBSCRIPTIONS_TRANSPORT_WS = "subscriptions-transport-ws"

# WebSocket subprotocol header value -> protocol name
SUBPROTOCOLS: dict[str, str] = {
    "graphql-transport-ws": GRAPHQL_WS,
    "graphql-ws": SUBSCRIPTIONS_TRANSPORT_WS,
}


class GraphQLTransportWsMessageType(str, Enum):
    """Message types of the graphql-transport-ws protocol."""

    CONNECTION_INIT = "connection_init"
    CONNECTION_ACK = "connection_ack"
    PING = "ping"
    PONG = "pong"
    SUBSCRIBE = "subscribe"
    NEXT = "next"
    ERROR = "error"
    COMPLETE = "complete"


class LegacyWsMessageType(str, Enum):
    """Message types of the legacy subscriptions-transport-ws protocol."""

    CONNECTION_INIT = "connection_init"
    CONNECTION_ACK = "connection_ack"
    CONNECTION_ERROR = "connection_error"
    CONNECTION_KEEP_ALIVE = "ka"
    CONNECTION_TERMINATE = "connection_terminate"
    START = "start"
    DATA = "data"
    ERROR = "error"
    COMPLETE = "complete"
    STOP = "stop"


_MODERN_TYPES = frozenset(t.value for t in GraphQLTransportWsMessageType)
_LEGACY_TYPES = frozenset(t.value for t in LegacyWsMessageType)
_MODERN_ONLY = _MODERN_TYPES - _LEGACY_TYPES
_LEGACY_ONLY = _LEGACY_TYPES - _MODERN_TYPES


def detect_protocol(message_type: str | None, subprotocol: str | None = None) -> str | None:
    """Identify the wire protocol of a connection.

    The negotiated subprotocol wins. Otherwise only message types that exist
    in exactly one protocol are conclusive; shared types such as
    ``connection_init`` or ``complete`` return None.
    """
    if subprotocol and subprotocol in SUBPROTOCOLS:
        return SUBPROTOCOLS[subprotocol]
    if message_type in _MODERN_ONLY:
        return GRAPHQL_WS
    if message_type in _LEGACY_ONLY:
        return SUBSCRIPTIONS_TRANSPORT_WS
    return None


@dataclass(slots=True)
class WsConnectionInfo:
    """Client details for one WebSocket connection."""

    id: str
    ip: str | None = None
    user_agent: str | None = None
    protocol: str | None = None


def _header(headers: Any, name: str) -> str | None:
    if headers is None:
        return None
    if isinstance(headers, Mapping):
        value = headers.get(name)
        if value is None:
            value = next((v for k, v in headers.items() if str(k).lower() == name), None)
        return value.decode("latin-1") if isinstance(value, bytes) else value
    # ASGI scope style: list of (bytes, bytes) pairs
    raw = name.encode("latin-1")
    for key, value in headers:
        if key.lower() == raw:
            return value.decode("latin-1")
    return None


def extract_connection_info(source: Any, connection_id: str) -> WsConnectionInfo:
    """Read client ip and user agent from a WebSocket, request or ASGI scope.

    The first ``x-forwarded-for`` hop wins over the socket peer address.
    """
    if isinstance(source, Mapping):
        headers = source.get("headers")
        client = source.get("client")
    else:
        headers = getattr(source, "headers", None)
        client = getattr(source, "client", None)

    ip: str | None = None
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip() or None
    if ip is None and client:
        ip = getattr(client, "host", None) or (client[0] if isinstance(client, (tuple, list)) else None)

    return WsConnectionInfo(
        id=connection_id,
        ip=ip,
        user_agent=_header(headers, "user-agent"),
    )


def _first_error_message(payload: Any) -> str:
    errors: Any = payload
    if isinstance(payload, Mapping):
        errors = payload.get("errors", [payload])
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, Mapping) and first.get("message"):
            return str(first["message"])
    return "GraphQL subscription error"


class WsMessageInterceptor:
    """Feeds protocol messages from a WebSocket into the lifecycle coordinator.

    One interceptor serves every connection of a server; protocol detection is
    remembered per connection id.
    """

    def __init__(
        self,
        coordinator: SubscriptionLifecycleCoordinator,
        transport_mode: str = "gateway",
    ) -> None:
        self.coordinator = coordinator
        self.transport_mode = transport_mode
        self._protocols: dict[str, str] = {}
        self._subprotocols: dict[str, str] = {}

    def protocol_for(self, connection_id: str) -> str | None:
        return self._protocols.get(connection_id)

    def _remember_protocol(
        self,
        connection_id: str,
        message_type: str | None,
        subprotocol: str | None,
    ) -> str | None:
        if subprotocol:
            self._subprotocols[connection_id] = subprotocol
        if connection_id not in self._protocols:
            protocol = detect_protocol(message_type, self._subprotocols.get(connection_id))
            if protocol:
                self._protocols[connection_id] = protocol
        return self._protocols.get(connection_id)

    async def intercept_incoming(
        self,
        connection_id: str,
        message: Any,
        client_info: WsConnectionInfo | None = None,
        subprotocol: str | None = None,
    ) -> None:
        """Handle a client -> server frame. Unknown message types are ignored."""
        if not isinstance(message, Mapping):
            return
        message_type = message.get("type")
        if not isinstance(message_type, str):
            return
        protocol = self._remember_protocol(connection_id, message_type, subprotocol)
        message_id = message.get("id")
        payload = message.get("payload")

        if message_type == GraphQLTransportWsMessageType.CONNECTION_INIT:
            await self.coordinator.handle_connection(
                connection_id,
                ip=client_info.ip if client_info else None,
                user_agent=client_info.user_agent if client_info else None,
                protocol=protocol,
                transport_mode=self.transport_mode,
            )
        elif message_type in (GraphQLTransportWsMessageType.SUBSCRIBE, LegacyWsMessageType.START):
            if message_id and isinstance(payload, Mapping):
                await self.coordinator.handle_start(
                    SubscriptionEvent(
                        connection_id=connection_id,
                        subscription_id=str(message_id),
                        query=payload.get("query"),
                        operation_name=payload.get("operationName"),
                        variables=payload.get("variables"),
                        protocol=protocol,
                        transport_mode=self.transport_mode,
                    )
                )
        elif message_type in (LegacyWsMessageType.STOP, GraphQLTransportWsMessageType.COMPLETE):
            # Client-initiated stop in either protocol
            if message_id:
                await self.coordinator.handle_complete(
                    SubscriptionEvent(connection_id=connection_id, subscription_id=str(message_id))
                )

    async def intercept_outgoing(self, connection_id: str, message: Any) -> None:
        """Handle a server -> client frame. Unknown message types are ignored."""
        if not isinstance(message, Mapping):
            return
        message_type = message.get("type")
        if not isinstance(message_type, str):
            return
        self._remember_protocol(connection_id, message_type, None)
        message_id = message.get("id")
        if not message_id:
            return
        payload = message.get("payload")

        if message_type in (GraphQLTransportWsMessageType.NEXT, LegacyWsMessageType.DATA):
            if isinstance(payload, Mapping) and payload.get("data") is not None:
                await self.coordinator.handle_data(
                    SubscriptionEvent(
                        connection_id=connection_id,
                        subscription_id=str(message_id),
                        data=payload["data"],
                    )
                )
        elif message_type == GraphQLTransportWsMessageType.ERROR:
            await self.coordinator.handle_error(
                SubscriptionEvent(
                    connection_id=connection_id,
                    subscription_id=str(message_id),
                    error=_first_error_message(payload),
                )
            )
        elif message_type == GraphQLTransportWsMessageType.COMPLETE:
            await self.coordinator.handle_complete(
                SubscriptionEvent(connection_id=connection_id, subscription_id=str(message_id))
            )

    async def handle_close(self, connection_id: str) -> None:
        """The socket is gone: finalize everything still open on it."""
        self._protocols.pop(connection_id, None)
        self._subprotocols.pop(connection_id, None)
        await self.coordinator.handle_disconnection(connection_id)


class ObservedWebSocket:
    """Starlette ``WebSocket`` wrapper that reports frames to an interceptor.

    Every attribute not defined here is forwarded to the wrapped socket.
    Instrumentation failures are logged and never reach the GraphQL server.
    """

    def __init__(
        self,
        websocket: WebSocket,
        interceptor: WsMessageInterceptor,
        connection_id: str | None = None,
    ) -> None:
        self._websocket = websocket
        self._interceptor = interceptor
        self.connection_id = connection_id or str(uuid.uuid4())
        self.client_info = extract_connection_info(websocket, self.connection_id)
        self._subprotocol: str | None = None
        self._closed = False

    def __getattr__(self, name: str) -> Any:
        return getattr(self._websocket, name)

    async def _observe(self, call: Callable[..., Awaitable[None]], *args: Any) -> None:
        try:
            await call(*args)
        except Exception:
            logger.exception(
                "Subscription capture failed",
                extra={"connection_id": self.connection_id},
            )

    async def _on_incoming(self, message: Any) -> None:
        await self._observe(
            self._interceptor.intercept_incoming,
            self.connection_id,
            message,
            self.client_info,
            self._subprotocol,
        )

    async def _on_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._observe(self._interceptor.handle_close, self.connection_id)

    async def accept(
        self,
        subprotocol: str | None = None,
        headers: Any = None,
    ) -> None:
        self._subprotocol = subprotocol
        self.client_info.protocol = detect_protocol(None, subprotocol)
        await self._websocket.accept(subprotocol=subprotocol, headers=headers)

    async def receive_json(self, mode: str = "text") -> Any:
        try:
            message = await self._websocket.receive_json(mode=mode)
        except WebSocketDisconnect:
            await self._on_closed()
            raise
        await self._on_incoming(message)
        return message

    async def receive_text(self) -> str:
        try:
            text = await self._websocket.receive_text()
        except WebSocketDisconnect:
            await self._on_closed()
            raise
        try:
            message = json.loads(text)
        except ValueError:
            return text
        await self._on_incoming(message)
        return text

    async def iter_json(self) -> AsyncIterator[Any]:
        try:
            while True:
                yield await self.receive_json()
        except WebSocketDisconnect:
            pass

    async def send_json(self, data: Any, mode: str = "text") -> None:
        await self._observe(self._interceptor.intercept_outgoing, self.connection_id, data)
        await self._websocket.send_json(data, mode=mode)

    async def send_text(self, data: str) -> None:
        try:
            message = json.loads(data)
        except ValueError:
            message = None
        if message is not None:
            await self._observe(self._interceptor.intercept_outgoing, self.connection_id, message)
        await self._websocket.send_text(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        try:
            await self._websocket.close(code=code, reason=reason)
        finally:
            await self._on_closed()


@dataclass(frozen=True, slots=True)
class GatewayHandlers:
    """Lifecycle callbacks for servers that expose their own WebSocket hooks."""

    on_connect: Callable[[WsConnectionInfo], Awaitable[bool]]
    on_disconnect: Callable[[WsConnectionInfo], Awaitable[None]]
    on_subscribe: Callable[[WsConnectionInfo, str, Mapping[str, Any]], Awaitable[str | None]]
    on_next: Callable[[WsConnectionInfo, str, Any], Awaitable[None]]
    on_error: Callable[[WsConnectionInfo, str, BaseException | str], Awaitable[None]]
    on_complete: Callable[[WsConnectionInfo, str], Awaitable[None]]


def create_gateway_handlers(
    coordinator: SubscriptionLifecycleCoordinator,
    transport_mode: str = "gateway",
) -> GatewayHandlers:
    """Build callbacks that forward server lifecycle hooks to the coordinator."""

    async def on_connect(info: WsConnectionInfo) -> bool:
        await coordinator.handle_connection(
            info.id,
            ip=info.ip,
            user_agent=info.user_agent,
            protocol=info.protocol,
            transport_mode=transport_mode,
        )
        return True

    async def on_disconnect(info: WsConnectionInfo) -> None:
        await coordinator.handle_disconnection(info.id)

    async def on_subscribe(
        info: WsConnectionInfo,
        subscription_id: str,
        payload: Mapping[str, Any],
    ) -> str | None:
        return await coordinator.handle_start(
            SubscriptionEvent(
                connection_id=info.id,
                subscription_id=subscription_id,
                query=payload.get("query"),
                operation_name=payload.get("operationName"),
                variables=payload.get("variables"),
                protocol=info.protocol,
                transport_mode=transport_mode,
            )
        )

    async def on_next(info: WsConnectionInfo, subscription_id: str, data: Any) -> None:
        await coordinator.handle_data(
            SubscriptionEvent(connection_id=info.id, subscription_id=subscription_id, data=data)
        )

    async def on_error(
        info: WsConnectionInfo,
        subscription_id: str,
        error: BaseException | str,
    ) -> None:
        await coordinator.handle_error(
            SubscriptionEvent(connection_id=info.id, subscription_id=subscription_id, error=error)
        )

    async def on_complete(info: WsConnectionInfo, subscription_id: str) -> None:
        await coordinator.handle_complete(
            SubscriptionEvent(connection_id=info.id, subscription_id=subscription_id)
        )

    return GatewayHandlers(
        on_connect=on_connect,
        on_disconnect=on_disconnect,
        on_subscribe=on_subscribe,
        on_next=on_next,
        on_error=on_error,
        on_complete=on_complete,
    )


__all__ = [
    "GRAPHQL_WS",
    "SUBPROTOCOLS",
    "SUBSCRIPTIONS_TRANSPORT_WS",
    "GatewayHandlers",
    "GraphQLTransportWsMessageType",
    "LegacyWsMessageType",
    "ObservedWebSocket",
    "WsConnectionInfo",
    "WsMessageInterceptor",
    "create_gateway_handlers",
    "detect_protocol",
    "extract_connection_info",
]
