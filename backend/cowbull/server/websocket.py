from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from cowbull.messaging.encoder import DecodeError, decode
from cowbull.messaging.protocol import ConnectionProtocol
from cowbull.messaging.types import ErrorCode, ErrorMessage
from cowbull.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from cowbull.messaging.router import MessageRouter

# Typing indicators are the chattiest traffic; a fast typist stays well under 20/s.
_RATE_LIMIT_RATE = 20.0
_RATE_LIMIT_BURST = 40

# Close the socket after this many undecodable frames in a row.
_MAX_DECODE_ERRORS = 5
_CLOSE_TOO_MANY_DECODE_ERRORS = 4004


class WebSocketConnection(ConnectionProtocol):
    """ConnectionProtocol over a Starlette WebSocket carrying MessagePack bytes frames."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        # rejoin may close a socket the peer already dropped
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


class _InboundGate:
    """Decode and throttle one connection's inbound frames.

    Every frame is decoded, even while throttled, so a client sending junk
    fast still runs out of strikes.
    """

    def __init__(self) -> None:
        self._bucket = TokenBucket(rate=_RATE_LIMIT_RATE, burst=_RATE_LIMIT_BURST)
        self.strikes = 0

    @property
    def exhausted(self) -> bool:
        return self.strikes >= _MAX_DECODE_ERRORS

    def admit(self, raw: bytes) -> tuple[dict[str, Any] | None, ErrorMessage | None]:
        """Return (message, None) for a frame to route, or (None, error) to answer instead."""
        try:
            data = decode(raw)
        except DecodeError as e:
            self.strikes += 1
            logger.warning("decode error", error=str(e), strikes=self.strikes)
            return None, ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e))

        self.strikes = 0
        if not self._bucket.consume():
            return None, ErrorMessage(code=ErrorCode.RATE_LIMITED, message="Too many messages")
        return data, None


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    gate = _InboundGate()
    try:
        while not gate.exhausted:
            data, error = gate.admit(await connection.receive_bytes())
            if data is not None:
                await router.handle_message(connection, data)
            elif error is not None:
                await connection.send_message(error.model_dump())

        logger.info("too many decode errors, disconnecting")
        await connection.close(code=_CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
