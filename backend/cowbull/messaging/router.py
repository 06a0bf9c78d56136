from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from cowbull.messaging.types import (
    CancelJoinRequestMessage,
    ClientMessage,
    CreateRoomMessage,
    ErrorCode,
    ErrorMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    MakeGuessMessage,
    PingMessage,
    RejoinRoomMessage,
    RequestRematchMessage,
    ResolveJoinRequestMessage,
    SendChatMessage,
    StartSetupMessage,
    SubmitSecretMessage,
    TypingMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from cowbull.messaging.protocol import ConnectionProtocol
    from cowbull.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    This class contains pure dispatch logic and can be tested
    without real WebSocket connections.
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
                ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except Exception:
            logger.exception("unhandled error while handling %s from %s", message.type, connection.connection_id)

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> None:  # noqa: PLR0912
        manager = self._session_manager
        if isinstance(message, CreateRoomMessage):
            await manager.create_room(connection, message.name, message.token)
        elif isinstance(message, JoinRoomMessage):
            await manager.request_join(connection, message.room_id, message.token, message.name)
        elif isinstance(message, CancelJoinRequestMessage):
            await manager.cancel_join_request(connection, message.room_id, message.token)
        elif isinstance(message, ResolveJoinRequestMessage):
            await manager.resolve_join_request(
                connection,
                message.room_id,
                message.token,
                message.candidate_token,
                accepted=message.accepted,
            )
        elif isinstance(message, StartSetupMessage):
            await manager.begin_setup(connection, message.room_id, message.token)
        elif isinstance(message, SubmitSecretMessage):
            await manager.submit_secret(connection, message.room_id, message.token, message.secret)
        elif isinstance(message, MakeGuessMessage):
            await manager.submit_guess(connection, message.room_id, message.token, message.guess)
        elif isinstance(message, RequestRematchMessage):
            await manager.request_rematch(connection, message.room_id, message.token)
        elif isinstance(message, SendChatMessage):
            await manager.send_chat(connection, message.room_id, message.token, message.text)
        elif isinstance(message, TypingMessage):
            await manager.set_typing(connection, message.room_id, message.token, is_typing=message.is_typing)
        elif isinstance(message, RejoinRoomMessage):
            await manager.rejoin(connection, message.room_id, message.token)
        elif isinstance(message, LeaveRoomMessage):
            await manager.leave_room(connection, message.room_id, message.token)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.handle_disconnect(connection)
        self._session_manager.unregister_connection(connection)
