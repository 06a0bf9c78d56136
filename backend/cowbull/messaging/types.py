from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from cowbull.logic.enums import RoomClosedReason, RoomPhase
from cowbull.session.models import (
    ChatRecord,
    GuessRecord,
    JoinRequestInfo,
    PlayerInfo,
    WinRecord,
)

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

WAITING_OPPONENT_NAME = "Waiting..."


def _reject_control_chars(value: str) -> str:
    if any((ord(c) < _SPACE_ORD and c not in ("\t", "\n", "\r")) or ord(c) == _DEL_ORD for c in value):
        raise ValueError("must not contain control characters")
    return value


class ClientMessageType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    CANCEL_JOIN_REQUEST = "cancel_join_request"
    RESOLVE_JOIN_REQUEST = "resolve_join_request"
    START_SETUP = "start_setup"
    SUBMIT_SECRET = "submit_secret"
    MAKE_GUESS = "make_guess"
    REQUEST_REMATCH = "request_rematch"
    SEND_CHAT = "send_chat"
    TYPING = "typing"
    REJOIN_ROOM = "rejoin_room"
    LEAVE_ROOM = "leave_room"
    PING = "ping"


class ServerMessageType(StrEnum):
    ROOM_CREATED = "room_created"
    LOBBY_UPDATE = "lobby_update"
    JOIN_REQUEST_SENT = "join_request_sent"
    JOIN_REQUEST_RECEIVED = "join_request_received"
    JOIN_REQUEST_CANCELED = "join_request_canceled"
    JOIN_APPROVED = "join_approved"
    JOIN_REJECTED = "join_rejected"
    ENTER_SETUP = "enter_setup"
    OP_READY_STATE = "op_ready_state"
    GAME_START = "game_start"
    GUESS_RESULT = "guess_result"
    REMATCH_STATUS_UPDATE = "rematch_status_update"
    RECEIVE_CHAT = "receive_chat"
    DISPLAY_TYPING = "display_typing"
    REJOINED_GAME = "rejoined_game"
    RECONNECT_SUCCESS = "reconnect_success"
    OPPONENT_DISCONNECTED = "opponent_disconnected"
    TIMER_TICK = "timer_tick"
    ROOM_CLOSED = "room_closed"
    ROOM_LEFT = "room_left"
    ERROR = "error"
    PONG = "pong"


class ErrorCode(StrEnum):
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_FULL = "room_full"
    SESSION_EXPIRED = "session_expired"
    NAME_TAKEN = "name_taken"
    REGISTRY_EXHAUSTED = "registry_exhausted"
    ALREADY_IN_ROOM = "already_in_room"
    SERVER_AT_CAPACITY = "server_at_capacity"
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"


_ROOM_ID_FIELD = Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
_TOKEN_FIELD = Field(min_length=1, max_length=100)
# structural code checks (length, alphabet, distinct symbols) happen in the room
_CODE_FIELD = Field(max_length=16)


class _NamedMessage(BaseModel):
    name: str = Field(min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        v = _reject_control_chars(v).strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CreateRoomMessage(_NamedMessage):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    token: str = _TOKEN_FIELD


class JoinRoomMessage(_NamedMessage):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD


class CancelJoinRequestMessage(BaseModel):
    type: Literal[ClientMessageType.CANCEL_JOIN_REQUEST] = ClientMessageType.CANCEL_JOIN_REQUEST
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD


class ResolveJoinRequestMessage(BaseModel):
    type: Literal[ClientMessageType.RESOLVE_JOIN_REQUEST] = ClientMessageType.RESOLVE_JOIN_REQUEST
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD
    candidate_token: str = _TOKEN_FIELD
    accepted: bool


class StartSetupMessage(BaseModel):
    type: Literal[ClientMessageType.START_SETUP] = ClientMessageType.START_SETUP
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD


class SubmitSecretMessage(BaseModel):
    type: Literal[ClientMessageType.SUBMIT_SECRET] = ClientMessageType.SUBMIT_SECRET
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD
    secret: str = _CODE_FIELD


class MakeGuessMessage(BaseModel):
    type: Literal[ClientMessageType.MAKE_GUESS] = ClientMessageType.MAKE_GUESS
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD
    guess: str = _CODE_FIELD


class RequestRematchMessage(BaseModel):
    type: Literal[ClientMessageType.REQUEST_REMATCH] = ClientMessageType.REQUEST_REMATCH
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD


class SendChatMessage(BaseModel):
    type: Literal[ClientMessageType.SEND_CHAT] = ClientMessageType.SEND_CHAT
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD
    text: str = Field(min_length=1, max_length=1000)

    @field_validator("text")
    @classmethod
    def _validate_text(cls, v: str) -> str:
        return _reject_control_chars(v)


class TypingMessage(BaseModel):
    type: Literal[ClientMessageType.TYPING] = ClientMessageType.TYPING
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD
    is_typing: bool


class RejoinRoomMessage(BaseModel):
    type: Literal[ClientMessageType.REJOIN_ROOM] = ClientMessageType.REJOIN_ROOM
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD


class LeaveRoomMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE_ROOM] = ClientMessageType.LEAVE_ROOM
    room_id: str = _ROOM_ID_FIELD
    token: str = _TOKEN_FIELD


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    CreateRoomMessage
    | JoinRoomMessage
    | CancelJoinRequestMessage
    | ResolveJoinRequestMessage
    | StartSetupMessage
    | SubmitSecretMessage
    | MakeGuessMessage
    | RequestRematchMessage
    | SendChatMessage
    | TypingMessage
    | RejoinRoomMessage
    | LeaveRoomMessage
    | PingMessage,
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed client message, dispatching on its type key."""
    return _client_message_adapter.validate_python(data)


# --- Server -> client ---


class RoomCreatedMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_CREATED] = ServerMessageType.ROOM_CREATED
    room_id: str


class LobbyUpdateMessage(BaseModel):
    type: Literal[ServerMessageType.LOBBY_UPDATE] = ServerMessageType.LOBBY_UPDATE
    room_id: str
    players: list[PlayerInfo]


class JoinRequestSentMessage(BaseModel):
    type: Literal[ServerMessageType.JOIN_REQUEST_SENT] = ServerMessageType.JOIN_REQUEST_SENT
    room_id: str


class JoinRequestReceivedMessage(BaseModel):
    type: Literal[ServerMessageType.JOIN_REQUEST_RECEIVED] = ServerMessageType.JOIN_REQUEST_RECEIVED
    room_id: str
    candidate_token: str
    candidate_name: str


class JoinRequestCanceledMessage(BaseModel):
    type: Literal[ServerMessageType.JOIN_REQUEST_CANCELED] = ServerMessageType.JOIN_REQUEST_CANCELED
    room_id: str
    candidate_token: str


class JoinApprovedMessage(BaseModel):
    type: Literal[ServerMessageType.JOIN_APPROVED] = ServerMessageType.JOIN_APPROVED
    room_id: str


class JoinRejectedMessage(BaseModel):
    type: Literal[ServerMessageType.JOIN_REJECTED] = ServerMessageType.JOIN_REJECTED
    room_id: str


class EnterSetupMessage(BaseModel):
    type: Literal[ServerMessageType.ENTER_SETUP] = ServerMessageType.ENTER_SETUP
    round: int


class OpReadyStateMessage(BaseModel):
    type: Literal[ServerMessageType.OP_READY_STATE] = ServerMessageType.OP_READY_STATE


class GameStartMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_START] = ServerMessageType.GAME_START
    opponent_name: str
    turn_token: str
    round: int
    scores: dict[str, int]


class GuessResultMessage(BaseModel):
    """Scored guess broadcast to the room.

    secrets, scores and result are only filled in on a winning guess;
    serialize with exclude_none so they are absent otherwise.
    """

    type: Literal[ServerMessageType.GUESS_RESULT] = ServerMessageType.GUESS_RESULT
    player_token: str
    player_name: str
    guess: str
    bulls: int
    cows: int
    winner: bool
    turn_token: str
    secrets: dict[str, str] | None = None
    scores: dict[str, int] | None = None
    result: WinRecord | None = None


class RematchStatusUpdateMessage(BaseModel):
    type: Literal[ServerMessageType.REMATCH_STATUS_UPDATE] = ServerMessageType.REMATCH_STATUS_UPDATE
    count: int
    required: int


class ReceiveChatMessage(BaseModel):
    type: Literal[ServerMessageType.RECEIVE_CHAT] = ServerMessageType.RECEIVE_CHAT
    player_token: str
    sender_name: str
    text: str


class DisplayTypingMessage(BaseModel):
    type: Literal[ServerMessageType.DISPLAY_TYPING] = ServerMessageType.DISPLAY_TYPING
    name: str
    is_typing: bool


class RejoinedGameMessage(BaseModel):
    """Full state snapshot sent to a rejoining player.

    Only the rejoining player's own secret is included.
    """

    type: Literal[ServerMessageType.REJOINED_GAME] = ServerMessageType.REJOINED_GAME
    room_id: str
    name: str
    secret: str | None
    opponent_name: str
    state: RoomPhase
    is_host: bool
    round: int
    turn_token: str | None
    guesses: list[GuessRecord]
    chat: list[ChatRecord]
    scores: dict[str, int]
    history: list[WinRecord]
    rematch_requested: bool
    rematch_votes: int
    join_requests: list[JoinRequestInfo]


class ReconnectSuccessMessage(BaseModel):
    type: Literal[ServerMessageType.RECONNECT_SUCCESS] = ServerMessageType.RECONNECT_SUCCESS
    player_name: str


class OpponentDisconnectedMessage(BaseModel):
    type: Literal[ServerMessageType.OPPONENT_DISCONNECTED] = ServerMessageType.OPPONENT_DISCONNECTED
    player_name: str
    time_left: int


class TimerTickMessage(BaseModel):
    type: Literal[ServerMessageType.TIMER_TICK] = ServerMessageType.TIMER_TICK
    player_name: str
    time_left: int


class RoomClosedMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_CLOSED] = ServerMessageType.ROOM_CLOSED
    room_id: str
    reason: RoomClosedReason


class RoomLeftMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_LEFT] = ServerMessageType.ROOM_LEFT
    room_id: str


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: ErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG
