"""WebSocket transport: one socket per client, MessagePack frames both ways.

Undecodable frames are answered with an ``invalid_message`` error; a run of
them closes the socket. Whatever ends the receive loop, the router is told
about the disconnect so the player's grace period starts.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from highlow.messaging.encoder import DecodeError, decode
from highlow.messaging.protocol import ConnectionProtocol
from highlow.messaging.types import ErrorMessage, SessionErrorCode

if TYPE_CHECKING:
    from collections.abc import Iterator

    from highlow.messaging.router import MessageRouter

logger = structlog.get_logger()

# Consecutive undecodable frames tolerated before the socket is closed
_MAX_DECODE_ERRORS = 5
_CLOSE_TOO_MANY_DECODE_ERRORS = 4004


@contextlib.contextmanager
def _peer_gone() -> Iterator[None]:
    try:
        yield
    except WebSocketDisconnect:
        raise ConnectionError("WebSocket already disconnected") from None


class WebSocketConnection(ConnectionProtocol):
    """ConnectionProtocol over a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        with _peer_gone():
            await self._websocket.send_bytes(data)

    async def receive_bytes(self) -> bytes:
        with _peer_gone():
            return await self._websocket.receive_bytes()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        # the socket may already be closed by the peer or by a resumed session
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def _serve(connection: WebSocketConnection, router: MessageRouter) -> None:
    strikes = 0
    while True:
        raw = await connection.receive_bytes()
        try:
            data = decode(raw)
        except DecodeError as e:
            strikes += 1
            logger.warning("decode error", error=str(e), strikes=strikes)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            if strikes >= _MAX_DECODE_ERRORS:
                logger.info("closing socket after repeated decode errors")
                await connection.close(code=_CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                return
            continue
        strikes = 0
        await router.handle_message(connection, data)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    client = websocket.client
    structlog.contextvars.bind_contextvars(
        connection_id=connection.connection_id,
        client=f"{client.host}:{client.port}" if client else None,
    )
    logger.info("websocket connected")
    await router.handle_connect(connection)
    try:
        await _serve(connection, router)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
