from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog

from cowbull.logic.enums import RoomClosedReason, RoomPhase
from cowbull.logic.exceptions import (
    NameTakenError,
    RegistryExhaustedError,
    RoomError,
    RoomFullError,
    RoomNotFoundError,
    SessionExpiredError,
    StaleActionError,
)
from cowbull.logic.settings import PLAYERS_PER_ROOM, RoomSettings
from cowbull.messaging.types import (
    WAITING_OPPONENT_NAME,
    DisplayTypingMessage,
    EnterSetupMessage,
    ErrorCode,
    ErrorMessage,
    GameStartMessage,
    GuessResultMessage,
    JoinApprovedMessage,
    JoinRejectedMessage,
    JoinRequestCanceledMessage,
    JoinRequestReceivedMessage,
    JoinRequestSentMessage,
    LobbyUpdateMessage,
    OpponentDisconnectedMessage,
    OpReadyStateMessage,
    PongMessage,
    ReceiveChatMessage,
    ReconnectSuccessMessage,
    RejoinedGameMessage,
    RematchStatusUpdateMessage,
    RoomClosedMessage,
    RoomCreatedMessage,
    RoomLeftMessage,
    TimerTickMessage,
)
from cowbull.session.broadcast import Delivery, deliver, to_player, to_players
from cowbull.session.models import JoinRequest, Player
from cowbull.session.registry import RoomRegistry
from cowbull.session.supervisor import DisconnectSupervisor

if TYPE_CHECKING:
    from cowbull.messaging.protocol import ConnectionProtocol
    from cowbull.session.room import Room

logger = structlog.get_logger()

DEFAULT_MAX_ROOMS = 1000

# Errors the user can act on; everything else is an expected race and is dropped.
_SURFACED_ERRORS: tuple[tuple[type[RoomError], ErrorCode], ...] = (
    (RoomNotFoundError, ErrorCode.ROOM_NOT_FOUND),
    (RoomFullError, ErrorCode.ROOM_FULL),
    (SessionExpiredError, ErrorCode.SESSION_EXPIRED),
    (NameTakenError, ErrorCode.NAME_TAKEN),
    (RegistryExhaustedError, ErrorCode.REGISTRY_EXHAUSTED),
)


class SessionManager:
    """Apply client events to rooms and deliver the resulting messages.

    Every operation reads and mutates room state without awaiting, then
    awaits delivery of the messages it computed. Nothing else can run
    between the read and the write, so rooms need no locks on a single
    event loop.
    """

    def __init__(
        self,
        settings: RoomSettings | None = None,
        *,
        registry: RoomRegistry | None = None,
        supervisor: DisconnectSupervisor | None = None,
        max_rooms: int = DEFAULT_MAX_ROOMS,
    ) -> None:
        self._settings = settings or RoomSettings()
        self._registry = registry or RoomRegistry()
        self._supervisor = supervisor or DisconnectSupervisor(grace_seconds=self._settings.grace_period_seconds)
        self._max_rooms = max_rooms
        self._connections: dict[str, ConnectionProtocol] = {}
        self._bindings: dict[str, tuple[str, str]] = {}  # connection_id -> (room_id, player token)
        self._candidates: dict[str, tuple[str, str]] = {}  # connection_id -> (room_id, candidate token)

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)

    def get_room(self, room_id: str) -> Room | None:
        return self._registry.get(room_id)

    @property
    def room_count(self) -> int:
        return self._registry.room_count

    @property
    def max_rooms(self) -> int:
        return self._max_rooms

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_in_room(self, connection_id: str) -> bool:
        return connection_id in self._bindings

    async def shutdown(self) -> None:
        """Stop every disconnect countdown."""
        await self._supervisor.cancel_all()

    # --- Error plumbing ---

    @staticmethod
    def _error(connection: ConnectionProtocol, code: ErrorCode, message: str) -> list[Delivery]:
        return [Delivery(connection, ErrorMessage(code=code, message=message).model_dump())]

    async def _send_error(self, connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        await deliver(self._error(connection, code, message))

    async def _reject(self, connection: ConnectionProtocol, error: RoomError) -> None:
        """Surface a user-actionable error, or drop an expected race quietly."""
        for error_type, code in _SURFACED_ERRORS:
            if isinstance(error, error_type):
                logger.info("request rejected", code=code, error=str(error))
                await self._send_error(connection, code, str(error))
                return
        logger.debug("action dropped", error=str(error))

    def _require_bound_player(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        token: str,
        action: str,
    ) -> tuple[Room, Player]:
        """Resolve the room and the player whose live connection sent this event."""
        room = self._registry.get(room_id)
        if room is None:
            raise StaleActionError(action=action, reason=f"room {room_id} is gone")
        player = room.get_player(token)
        if player is None:
            raise StaleActionError(action=action, reason="not a member")
        if player.connection_id != connection.connection_id:
            raise StaleActionError(action=action, reason="token is bound to another connection")
        return room, player

    def _lobby_update(self, room: Room) -> list[Delivery]:
        message = LobbyUpdateMessage(room_id=room.room_id, players=room.get_player_info()).model_dump()
        return to_players(room.players.values(), message)

    # --- Lobby ---

    async def create_room(self, connection: ConnectionProtocol, name: str, token: str) -> None:
        """Create a room with the requester as its host and sole player."""
        if connection.connection_id in self._bindings:
            await self._send_error(connection, ErrorCode.ALREADY_IN_ROOM, "You must leave your current room first")
            return
        if self._registry.room_count >= self._max_rooms:
            await self._send_error(connection, ErrorCode.SERVER_AT_CAPACITY, "Server at capacity")
            return

        try:
            room = self._registry.create(self._settings)
        except RegistryExhaustedError as e:
            await self._reject(connection, e)
            return

        deliveries = self._withdraw_candidacy(connection.connection_id)
        room.add_player(Player(token=token, name=name, connection=connection))
        self._bindings[connection.connection_id] = (room.room_id, token)

        structlog.contextvars.bind_contextvars(room_id=room.room_id)
        logger.info("room created", player_name=name)

        deliveries.append(Delivery(connection, RoomCreatedMessage(room_id=room.room_id).model_dump()))
        deliveries.extend(self._lobby_update(room))
        await deliver(deliveries)

    async def request_join(self, connection: ConnectionProtocol, room_id: str, token: str, name: str) -> None:
        """Ask the room's members to let a candidate in.

        A token that already has a player record in the room is a rejoin,
        not a new request.
        """
        room = self._registry.get(room_id)
        if room is None:
            await self._reject(connection, RoomNotFoundError(f"Room {room_id} not found"))
            return
        if room.is_member(token):
            await self.rejoin(connection, room_id, token)
            return
        if connection.connection_id in self._bindings:
            await self._send_error(connection, ErrorCode.ALREADY_IN_ROOM, "You must leave your current room first")
            return

        deliveries: list[Delivery] = []
        if self._candidates.get(connection.connection_id) != (room_id, token):
            deliveries.extend(self._withdraw_candidacy(connection.connection_id))

        previous = room.join_requests.get(token)
        try:
            room.add_join_request(JoinRequest(token=token, name=name, connection=connection))
        except RoomError as e:
            await deliver(deliveries)
            await self._reject(connection, e)
            return

        if previous is not None and previous.connection_id != connection.connection_id:
            self._candidates.pop(previous.connection_id, None)
        self._candidates[connection.connection_id] = (room_id, token)
        logger.info("join requested", room_id=room_id, candidate_name=name)

        deliveries.append(Delivery(connection, JoinRequestSentMessage(room_id=room_id).model_dump()))
        deliveries.extend(
            to_players(
                room.players.values(),
                JoinRequestReceivedMessage(
                    room_id=room_id,
                    candidate_token=token,
                    candidate_name=name,
                ).model_dump(),
            )
        )
        await deliver(deliveries)

    def _withdraw_candidacy(self, connection_id: str) -> list[Delivery]:
        """Drop the pending join request owned by a connection, notifying the room's members."""
        pending = self._candidates.pop(connection_id, None)
        if pending is None:
            return []
        room_id, token = pending
        room = self._registry.get(room_id)
        if room is None:
            return []
        request = room.join_requests.get(token)
        if request is None or request.connection_id != connection_id:
            return []
        room.pop_join_request(token)
        message = JoinRequestCanceledMessage(room_id=room_id, candidate_token=token).model_dump()
        return to_players(room.players.values(), message)

    async def cancel_join_request(self, connection: ConnectionProtocol, room_id: str, token: str) -> None:
        """Withdraw the candidate's own pending request. No-op when nothing is pending."""
        if self._candidates.get(connection.connection_id) != (room_id, token):
            logger.debug("no pending join request to cancel", room_id=room_id)
            return
        await deliver(self._withdraw_candidacy(connection.connection_id))

    async def resolve_join_request(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        token: str,
        candidate_token: str,
        *,
        accepted: bool,
    ) -> None:
        """Accept or reject a pending candidate.

        Idempotent: resolving a request that was already resolved or
        cancelled does nothing.
        """
        try:
            room, _ = self._require_bound_player(connection, room_id, token, "resolve_join_request")
        except RoomError as e:
            await self._reject(connection, e)
            return

        request = room.join_requests.get(candidate_token)
        if request is None:
            logger.debug("join request already resolved", room_id=room_id)
            return
        self._candidates.pop(request.connection_id, None)

        if not accepted:
            room.pop_join_request(candidate_token)
            logger.info("join rejected", room_id=room_id, candidate_name=request.name)
            await deliver([Delivery(request.connection, JoinRejectedMessage(room_id=room_id).model_dump())])
            return

        try:
            room.admit(candidate_token)
        except (RoomFullError, NameTakenError) as e:
            await self._reject(request.connection, e)
            return

        self._bindings[request.connection_id] = (room_id, candidate_token)
        logger.info("join approved", room_id=room_id, player_name=request.name)

        deliveries = [Delivery(request.connection, JoinApprovedMessage(room_id=room_id).model_dump())]
        deliveries.extend(self._lobby_update(room))
        if room.is_full:
            deliveries.extend(self._reject_pending_requests(room))
        await deliver(deliveries)

    def _reject_pending_requests(self, room: Room) -> list[Delivery]:
        message = JoinRejectedMessage(room_id=room.room_id).model_dump()
        deliveries = []
        for request in list(room.join_requests.values()):
            self._candidates.pop(request.connection_id, None)
            deliveries.append(Delivery(request.connection, message))
        room.join_requests.clear()
        return deliveries

    # --- Setup and play ---

    async def begin_setup(self, connection: ConnectionProtocol, room_id: str, token: str) -> None:
        try:
            room, _ = self._require_bound_player(connection, room_id, token, "begin_setup")
            room.begin_setup(token)
        except RoomError as e:
            await self._reject(connection, e)
            return

        logger.info("setup started", room_id=room_id, round=room.round_count)
        message = EnterSetupMessage(round=room.round_count).model_dump()
        await deliver(to_players(room.players.values(), message))

    async def submit_secret(self, connection: ConnectionProtocol, room_id: str, token: str, secret: str) -> None:
        """Mark a player ready with their secret; start the round once both are ready."""
        try:
            room, _ = self._require_bound_player(connection, room_id, token, "submit_secret")
            started = room.submit_secret(token, secret)
        except RoomError as e:
            await self._reject(connection, e)
            return

        deliveries = to_players(room.players.values(), OpReadyStateMessage().model_dump(), exclude_token=token)
        if started:
            logger.info("round started", room_id=room_id, round=room.round_count)
            deliveries.extend(self._game_start_deliveries(room))
        await deliver(deliveries)

    @staticmethod
    def _game_start_deliveries(room: Room) -> list[Delivery]:
        """Tell each player who they face and whose turn it is. Secrets stay server-side."""
        deliveries = []
        for player in room.players.values():
            opponent = room.opponent_of(player.token)
            message = GameStartMessage(
                opponent_name=opponent.name if opponent else WAITING_OPPONENT_NAME,
                turn_token=room.turn_token,
                round=room.round_count,
                scores=dict(room.scores),
            ).model_dump()
            deliveries.extend(to_player(player, message))
        return deliveries

    async def submit_guess(self, connection: ConnectionProtocol, room_id: str, token: str, guess: str) -> None:
        """Score the turn holder's guess and broadcast the result.

        Out-of-turn, stale and malformed guesses change nothing and send nothing.
        """
        try:
            room, _ = self._require_bound_player(connection, room_id, token, "submit_guess")
            record = room.submit_guess(token, guess)
        except RoomError as e:
            await self._reject(connection, e)
            return

        if record.winner:
            # the round is over, so both secrets can be shown to everyone
            message = GuessResultMessage(
                **record.model_dump(),
                secrets=room.revealed_secrets(),
                scores=dict(room.scores),
                result=room.history[-1],
            )
            logger.info("round won", room_id=room_id, winner=record.player_name, round=room.round_count)
        else:
            message = GuessResultMessage(**record.model_dump())
        await deliver(to_players(room.players.values(), message.model_dump(exclude_none=True)))

    async def request_rematch(self, connection: ConnectionProtocol, room_id: str, token: str) -> None:
        """Record consent for a new round; reset to setup once both players agree."""
        try:
            room, _ = self._require_bound_player(connection, room_id, token, "request_rematch")
            votes = len(room.rematch_votes | {token})
            reset = room.add_rematch_vote(token)
        except RoomError as e:
            await self._reject(connection, e)
            return

        deliveries = to_players(
            room.players.values(),
            RematchStatusUpdateMessage(count=votes, required=PLAYERS_PER_ROOM).model_dump(),
        )
        if reset:
            logger.info("rematch agreed", room_id=room_id, round=room.round_count)
            deliveries.extend(to_players(room.players.values(), EnterSetupMessage(round=room.round_count).model_dump()))
        await deliver(deliveries)

    async def send_chat(self, connection: ConnectionProtocol, room_id: str, token: str, text: str) -> None:
        try:
            room, _ = self._require_bound_player(connection, room_id, token, "send_chat")
            record = room.add_chat(token, text)
        except RoomError as e:
            await self._reject(connection, e)
            return

        await deliver(to_players(room.players.values(), ReceiveChatMessage(**record.model_dump()).model_dump()))

    async def set_typing(self, connection: ConnectionProtocol, room_id: str, token: str, *, is_typing: bool) -> None:
        """Relay a typing indicator to everyone but the sender. Not logged in the room."""
        try:
            room, player = self._require_bound_player(connection, room_id, token, "typing")
        except RoomError as e:
            await self._reject(connection, e)
            return

        message = DisplayTypingMessage(name=player.name, is_typing=is_typing).model_dump()
        await deliver(to_players(room.players.values(), message, exclude_token=token))

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await deliver([Delivery(connection, PongMessage().model_dump())])

    # --- Reconnection ---

    async def rejoin(self, connection: ConnectionProtocol, room_id: str, token: str) -> None:
        """Rebind a known token to a new connection and send it the full room state."""
        room = self._registry.get(room_id)
        player = room.get_player(token) if room is not None else None
        if room is None or player is None:
            await self._reject(connection, SessionExpiredError("Room expired or invalid token"))
            return
        binding = self._bindings.get(connection.connection_id)
        if binding is not None and binding != (room_id, token):
            await self._send_error(connection, ErrorCode.ALREADY_IN_ROOM, "You must leave your current room first")
            return

        # cancel before anything else can observe the room, so expiry cannot race the rejoin
        self._supervisor.cancel(token)
        deliveries = self._withdraw_candidacy(connection.connection_id)

        stale_connection = player.connection if player.connection_id != connection.connection_id else None
        if stale_connection is not None:
            self._bindings.pop(stale_connection.connection_id, None)
        player.connection = connection
        self._bindings[connection.connection_id] = (room_id, token)

        structlog.contextvars.bind_contextvars(room_id=room_id)
        logger.info("player rejoined", player_name=player.name)

        opponent = room.opponent_of(token)
        snapshot = RejoinedGameMessage(
            room_id=room_id,
            name=player.name,
            secret=player.secret,
            opponent_name=opponent.name if opponent else WAITING_OPPONENT_NAME,
            state=room.phase,
            is_host=token == room.host_token,
            round=room.round_count,
            turn_token=room.turn_token,
            guesses=list(room.guesses),
            chat=list(room.chat),
            scores=dict(room.scores),
            history=list(room.history),
            rematch_requested=token in room.rematch_votes,
            rematch_votes=len(room.rematch_votes),
            join_requests=room.get_join_request_info() if room.phase is RoomPhase.LOBBY else [],
        )
        deliveries.append(Delivery(connection, snapshot.model_dump()))
        if room.phase is RoomPhase.SETUP and opponent is not None and opponent.ready:
            deliveries.append(Delivery(connection, OpReadyStateMessage().model_dump()))
        deliveries.extend(
            to_players(room.players.values(), ReconnectSuccessMessage(player_name=player.name).model_dump())
        )
        await deliver(deliveries)

        if stale_connection is not None:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await stale_connection.close(code=1000, reason="replaced_by_rejoin")

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Detach a dropped connection from its player and start the grace countdown.

        The player record, secret and votes are kept so a rejoin restores them.
        """
        deliveries = self._withdraw_candidacy(connection.connection_id)
        binding = self._bindings.pop(connection.connection_id, None)
        room = self._registry.get(binding[0]) if binding is not None else None
        player = room.get_player(binding[1]) if room is not None and binding is not None else None
        if room is None or player is None or player.connection_id != connection.connection_id:
            await deliver(deliveries)
            return

        player.connection = None
        grace = self._supervisor.grace_seconds
        logger.info("player detached", room_id=room.room_id, player_name=player.name, grace_seconds=grace)
        self._supervisor.start(room.room_id, player.token, self._on_countdown_tick, self._on_countdown_expire)

        message = OpponentDisconnectedMessage(player_name=player.name, time_left=grace).model_dump()
        deliveries.extend(to_players(room.players.values(), message))
        await deliver(deliveries)

    async def _on_countdown_tick(self, room_id: str, token: str, seconds_left: int) -> None:
        room = self._registry.get(room_id)
        player = room.get_player(token) if room is not None else None
        if room is None or player is None:
            return
        message = TimerTickMessage(player_name=player.name, time_left=seconds_left).model_dump()
        await deliver(to_players(room.players.values(), message))

    async def _on_countdown_expire(self, room_id: str, token: str) -> None:
        room = self._registry.get(room_id)
        player = room.get_player(token) if room is not None else None
        if room is None or player is None or player.is_connected:
            return
        logger.info("disconnect grace period expired, closing room", room_id=room_id, player_name=player.name)
        await deliver(self._teardown(room, RoomClosedReason.OPPONENT_TIMEOUT))

    # --- Leaving and teardown ---

    async def leave_room(self, connection: ConnectionProtocol, room_id: str, token: str) -> None:
        """Remove a player who leaves on purpose.

        In the lobby the other player keeps the room and becomes host.
        Later phases dissolve the room, unless the room policy says to fall
        back to the lobby instead.
        """
        try:
            room, player = self._require_bound_player(connection, room_id, token, "leave_room")
        except RoomError as e:
            await self._reject(connection, e)
            return

        self._supervisor.cancel(token)
        room.remove_player(token)
        self._bindings.pop(connection.connection_id, None)
        logger.info("player left", room_id=room_id, player_name=player.name, phase=room.phase)

        deliveries = [Delivery(connection, RoomLeftMessage(room_id=room_id).model_dump())]
        if room.is_empty:
            deliveries.extend(self._teardown(room, RoomClosedReason.ROOM_EMPTY))
        elif room.phase is RoomPhase.LOBBY:
            deliveries.extend(self._lobby_update(room))
        elif room.settings.dissolve_on_leave:
            deliveries.extend(self._teardown(room, RoomClosedReason.OPPONENT_LEFT))
        else:
            room.reset_to_lobby()
            deliveries.extend(self._lobby_update(room))
        await deliver(deliveries)

    def _teardown(self, room: Room, reason: RoomClosedReason) -> list[Delivery]:
        """Delete a room, stop its countdowns and tell everyone still attached."""
        self._registry.delete(room.room_id)
        for token in room.player_order:
            self._supervisor.cancel(token)

        message = RoomClosedMessage(room_id=room.room_id, reason=reason).model_dump()
        deliveries = to_players(room.players.values(), message)
        for player in room.players.values():
            if player.connection_id is not None:
                self._bindings.pop(player.connection_id, None)
        for request in room.join_requests.values():
            self._candidates.pop(request.connection_id, None)
            deliveries.append(Delivery(request.connection, message))
        room.join_requests.clear()

        logger.info("room closed", room_id=room.room_id, reason=reason)
        return deliveries
