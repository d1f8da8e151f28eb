from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from highlow.messaging.types import (
    CreateGameMessage,
    EndGameMessage,
    ErrorMessage,
    JoinGameMessage,
    LeaveGameMessage,
    MakePredictionMessage,
    ReconnectMessage,
    SelectPileMessage,
    SessionErrorCode,
    StartGameMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from highlow.messaging.protocol import ConnectionProtocol
    from highlow.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Malformed payloads are rejected here, before they can reach game state.
    This class contains no transport code and can be tested with in-memory
    connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except Exception:
            logger.exception("unexpected error handling %s for %s", message.type, connection.connection_id)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INTERNAL_ERROR, message="Internal server error").model_dump(),
            )

    async def _dispatch(self, connection: ConnectionProtocol, message: object) -> None:
        manager = self._session_manager
        if isinstance(message, CreateGameMessage):
            await manager.create_game(connection, message.username)
        elif isinstance(message, JoinGameMessage):
            await manager.join_game(connection, message.room_code, message.username)
        elif isinstance(message, ReconnectMessage):
            await manager.reconnect(connection, message.username, message.session_token, message.room_code)
        elif isinstance(message, LeaveGameMessage):
            await manager.leave_game(connection, message.room_code)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection, message.room_code)
        elif isinstance(message, SelectPileMessage):
            await manager.select_pile(connection, message.room_code, message.pile_index)
        elif isinstance(message, MakePredictionMessage):
            await manager.make_prediction(connection, message.room_code, message.prediction)
        elif isinstance(message, EndGameMessage):
            await manager.end_game(connection, message.room_code)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        try:
            await self._session_manager.handle_disconnect(connection)
        finally:
            # also runs when the socket task is cancelled mid-broadcast
            self._session_manager.unregister_connection(connection)
