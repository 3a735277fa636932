"""
Feed transport — websocket connection to a Geyser subscribe endpoint.

Responsibilities:
- connect(): open an authenticated (x-token) websocket, TLS for wss:// via system roots.
- subscribe(): send the initial SubscribeRequest, return (sender, inbound update stream).
- Map websocket failures onto ConnectError / TransportError / ProtocolError.

The session layer only depends on the FeedConnection / FeedSender protocols,
so tests drive it with in-memory fakes.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake, InvalidURI

from geyser_ingest.core.exceptions import ConnectError, TransportError
from geyser_ingest.geyser_listener.models import InboundUpdate, SubscribeRequest
from geyser_ingest.geyser_listener.wire import encode_request, parse_update
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)

DEFAULT_ENDPOINT = "http://127.0.0.1:10000"
DEFAULT_OPEN_TIMEOUT_SEC = 10.0
DEFAULT_CLOSE_TIMEOUT_SEC = 5.0
# Websocket protocol-level pings; application pings are answered by KeepaliveResponder
DEFAULT_WS_PING_INTERVAL = 30.0
DEFAULT_WS_PING_TIMEOUT = 10.0
# Full transactions with many accounts can be large
DEFAULT_MAX_FRAME_BYTES = 16 * 1024 * 1024


class FeedSender(Protocol):
    """Outbound side of a subscribe stream."""

    async def send(self, request: SubscribeRequest) -> None:
        ...


class FeedConnection(Protocol):
    """An authenticated connection that can carry one subscribe stream."""

    async def subscribe(
        self, request: SubscribeRequest
    ) -> tuple[FeedSender, AsyncIterator[InboundUpdate]]:
        ...

    async def close(self) -> None:
        ...


def endpoint_to_ws(endpoint: str) -> str:
    """Convert http(s):// endpoints to ws(s)://; ws(s) URLs pass through."""
    s = endpoint.strip()
    if s.startswith("https://"):
        return "wss://" + s[8:]
    if s.startswith("http://"):
        return "ws://" + s[7:]
    return s


class WebsocketSender:
    """
    Serializes SubscribeRequests onto the websocket.

    Writes are guarded by a lock so concurrent senders never interleave frames.
    """

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws
        self._lock = asyncio.Lock()

    async def send(self, request: SubscribeRequest) -> None:
        frame = encode_request(request)
        async with self._lock:
            try:
                await self._ws.send(frame)
            except ConnectionClosed as e:
                raise TransportError(f"send failed, connection closed: {e}") from e
            except OSError as e:
                raise TransportError(f"send failed: {e}") from e


class WebsocketConnection:
    """One open websocket to the feed. Owned by exactly one session."""

    def __init__(self, ws: ClientConnection, endpoint: str) -> None:
        self._ws = ws
        self._endpoint = endpoint
        self._subscribed = False

    async def subscribe(
        self, request: SubscribeRequest
    ) -> tuple[WebsocketSender, AsyncIterator[InboundUpdate]]:
        if self._subscribed:
            raise TransportError("connection already carries a subscription")
        self._subscribed = True
        sender = WebsocketSender(self._ws)
        await sender.send(request)
        return sender, self._updates()

    async def _updates(self) -> AsyncIterator[InboundUpdate]:
        """Yield parsed updates; end on clean close, raise TransportError on abnormal close."""
        try:
            async for raw in self._ws:
                yield parse_update(raw)
        except ConnectionClosedError as e:
            raise TransportError(f"stream receive failed: {e}") from e
        except OSError as e:
            raise TransportError(f"stream receive failed: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


class WebsocketTransport:
    """Factory for feed connections (the 'connect' collaborator of the supervisor)."""

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        x_token: str | None = None,
        *,
        open_timeout_sec: float = DEFAULT_OPEN_TIMEOUT_SEC,
        ping_interval_sec: float | None = DEFAULT_WS_PING_INTERVAL,
        ping_timeout_sec: float | None = DEFAULT_WS_PING_TIMEOUT,
        max_frame_bytes: int | None = DEFAULT_MAX_FRAME_BYTES,
    ) -> None:
        if not endpoint.strip():
            raise ValueError("endpoint must be non-empty")
        self._url = endpoint_to_ws(endpoint)
        self._x_token = x_token
        self._open_timeout = open_timeout_sec
        self._ping_interval = ping_interval_sec
        self._ping_timeout = ping_timeout_sec
        self._max_frame_bytes = max_frame_bytes

    @property
    def url(self) -> str:
        return self._url

    async def connect(self) -> WebsocketConnection:
        headers = {"x-token": self._x_token} if self._x_token else None
        try:
            ws = await connect(
                self._url,
                additional_headers=headers,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                close_timeout=DEFAULT_CLOSE_TIMEOUT_SEC,
                max_size=self._max_frame_bytes,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            raise ConnectError(f"failed to connect to {self._url}: {e}") from e
        logger.info("feed_connected", url=self._url)
        return WebsocketConnection(ws, self._url)
