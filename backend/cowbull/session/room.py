"""Room aggregate and its phase state machine.

A room pairs at most two players and moves through lobby -> setup -> game,
returning to setup on every rematch. Transitions are plain methods that
mutate the room synchronously and raise a RoomError subclass when the call
does not fit the current phase, turn, or membership. No I/O happens here;
the session manager turns the results into outbound messages.
"""

from dataclasses import dataclass, field

from cowbull.logic.code import is_valid_code, score_guess
from cowbull.logic.enums import RoomPhase
from cowbull.logic.exceptions import (
    InvalidCodeError,
    NameTakenError,
    RoomFullError,
    StaleActionError,
)
from cowbull.logic.settings import PLAYERS_PER_ROOM, RoomSettings
from cowbull.session.models import (
    ChatRecord,
    GuessRecord,
    JoinRequest,
    JoinRequestInfo,
    Player,
    PlayerInfo,
    WinRecord,
)


@dataclass
class Room:
    """Session shared by up to two players through one match.

    player_order fixes join order: the first token is the host, and the
    opening turn of round N belongs to player_order[N % 2].
    """

    room_id: str
    settings: RoomSettings = field(default_factory=RoomSettings)
    phase: RoomPhase = RoomPhase.LOBBY
    player_order: list[str] = field(default_factory=list)
    players: dict[str, Player] = field(default_factory=dict)  # token -> Player
    join_requests: dict[str, JoinRequest] = field(default_factory=dict)  # candidate token -> JoinRequest
    round_count: int = 0
    turn_token: str | None = None
    winner_token: str | None = None
    guesses: list[GuessRecord] = field(default_factory=list)
    chat: list[ChatRecord] = field(default_factory=list)
    rematch_votes: set[str] = field(default_factory=set)
    scores: dict[str, int] = field(default_factory=dict)  # player name -> wins
    history: list[WinRecord] = field(default_factory=list)

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def is_full(self) -> bool:
        return self.player_count >= PLAYERS_PER_ROOM

    @property
    def host_token(self) -> str | None:
        return self.player_order[0] if self.player_order else None

    @property
    def player_names(self) -> list[str]:
        return [self.players[token].name for token in self.player_order]

    @property
    def round_over(self) -> bool:
        return self.winner_token is not None

    def get_player(self, token: str) -> Player | None:
        return self.players.get(token)

    def is_member(self, token: str) -> bool:
        return token in self.players

    def opponent_of(self, token: str) -> Player | None:
        for other in self.player_order:
            if other != token:
                return self.players[other]
        return None

    def starter_for_round(self, round_count: int) -> str:
        """Return the token that opens the given round (alternates every round)."""
        return self.player_order[round_count % PLAYERS_PER_ROOM]

    def get_player_info(self) -> list[PlayerInfo]:
        """Return player info for lobby state messages."""
        return [
            PlayerInfo(
                name=self.players[token].name,
                is_host=token == self.host_token,
                connected=self.players[token].is_connected,
            )
            for token in self.player_order
        ]

    def get_join_request_info(self) -> list[JoinRequestInfo]:
        return [
            JoinRequestInfo(candidate_token=request.token, candidate_name=request.name)
            for request in self.join_requests.values()
        ]

    def revealed_secrets(self) -> dict[str, str]:
        """Map player name to secret. Only safe to send once the round is won."""
        return {
            self.players[token].name: self.players[token].secret or "" for token in self.player_order
        }

    def guess_count(self, token: str) -> int:
        """Number of guesses the token made in the current round."""
        return sum(1 for record in self.guesses if record.player_token == token)

    # --- Membership ---

    def _check_name_available(self, name: str, token: str) -> None:
        for player in self.players.values():
            if player.name == name and player.token != token:
                raise NameTakenError(f"name {name!r} is already used in room {self.room_id}")

    def add_player(self, player: Player) -> None:
        """Seat a player. Used for the host on creation and for approved candidates."""
        if self.is_full:
            raise RoomFullError(f"room {self.room_id} is full")
        self._check_name_available(player.name, player.token)
        self.players[player.token] = player
        if player.token not in self.player_order:
            self.player_order.append(player.token)
        self.scores.setdefault(player.name, 0)

    def add_join_request(self, request: JoinRequest) -> None:
        """Record a pending request; a repeated request from the same token replaces the old one."""
        if self.is_full:
            raise RoomFullError(f"room {self.room_id} is full")
        self._check_name_available(request.name, request.token)
        self.join_requests[request.token] = request

    def pop_join_request(self, token: str) -> JoinRequest | None:
        return self.join_requests.pop(token, None)

    def admit(self, candidate_token: str) -> Player | None:
        """Promote a pending candidate to a player.

        Returns None when the request no longer exists (already resolved or
        cancelled). The player count is re-checked here rather than trusted
        from request time; a full room discards the request and raises.
        """
        request = self.join_requests.pop(candidate_token, None)
        if request is None:
            return None
        player = Player(token=request.token, name=request.name, connection=request.connection)
        self.add_player(player)
        return player

    def remove_player(self, token: str) -> Player | None:
        player = self.players.pop(token, None)
        if player is None:
            return None
        if token in self.player_order:
            self.player_order.remove(token)
        self.rematch_votes.discard(token)
        self.scores.pop(player.name, None)
        return player

    # --- Phase transitions ---

    def begin_setup(self, token: str) -> None:
        """Move lobby -> setup. Host only, and only once both players are seated."""
        if self.phase is not RoomPhase.LOBBY:
            raise StaleActionError(action="begin_setup", reason=f"room is in {self.phase.value}")
        if token != self.host_token:
            raise StaleActionError(action="begin_setup", reason="only the host can start setup")
        if not self.is_full:
            raise StaleActionError(action="begin_setup", reason="waiting for an opponent")
        self.phase = RoomPhase.SETUP

    def submit_secret(self, token: str, code: str) -> bool:
        """Store a player's secret and mark them ready.

        Returns True when this submission completed setup and started the round.
        """
        if self.phase is not RoomPhase.SETUP:
            raise StaleActionError(action="submit_secret", reason=f"room is in {self.phase.value}")
        player = self.players.get(token)
        if player is None:
            raise StaleActionError(action="submit_secret", reason="not a member")
        if not is_valid_code(code, self.settings.code_length):
            raise InvalidCodeError(f"invalid secret from {player.name}")

        player.secret = code
        player.ready = True

        if self.is_full and all(p.ready and p.secret for p in self.players.values()):
            self._start_round()
            return True
        return False

    def _start_round(self) -> None:
        self.phase = RoomPhase.GAME
        self.turn_token = self.starter_for_round(self.round_count)
        self.winner_token = None

    def submit_guess(self, token: str, code: str) -> GuessRecord:
        """Score a guess from the turn holder against the opponent's secret."""
        if self.phase is not RoomPhase.GAME:
            raise StaleActionError(action="submit_guess", reason=f"room is in {self.phase.value}")
        if self.round_over:
            raise StaleActionError(action="submit_guess", reason="round already won")
        if token != self.turn_token:
            raise StaleActionError(action="submit_guess", reason="not your turn")
        if not is_valid_code(code, self.settings.code_length):
            raise InvalidCodeError(f"invalid guess from {token}")

        player = self.players[token]
        opponent = self.opponent_of(token)
        if opponent is None or opponent.secret is None:
            raise StaleActionError(action="submit_guess", reason="opponent has no secret")

        score = score_guess(opponent.secret, code)
        winner = score.is_win(self.settings.code_length)
        if winner:
            self.winner_token = token
        else:
            self.turn_token = opponent.token

        record = GuessRecord(
            player_token=token,
            player_name=player.name,
            guess=code,
            bulls=score.bulls,
            cows=score.cows,
            winner=winner,
            turn_token=self.turn_token,
        )
        self.guesses.append(record)

        if winner:
            self.scores[player.name] = self.scores.get(player.name, 0) + 1
            self.history.append(
                WinRecord(
                    round=self.round_count,
                    winner=player.name,
                    secret=opponent.secret,
                    guess_count=self.guess_count(token),
                )
            )
        return record

    def add_rematch_vote(self, token: str) -> bool:
        """Register consent for a new round.

        Returns True when the second distinct vote arrived and the room was reset.
        """
        if token not in self.players:
            raise StaleActionError(action="request_rematch", reason="not a member")
        if self.phase is not RoomPhase.GAME or not self.round_over:
            raise StaleActionError(action="request_rematch", reason="round still in progress")

        self.rematch_votes.add(token)
        if len(self.rematch_votes) >= PLAYERS_PER_ROOM and self.rematch_votes >= set(self.players):
            self._reset_for_rematch()
            return True
        return False

    def _reset_for_rematch(self) -> None:
        self.phase = RoomPhase.SETUP
        self.round_count += 1
        self._clear_round()
        if self.settings.clear_chat_on_rematch:
            self.chat.clear()

    def _clear_round(self) -> None:
        self.guesses.clear()
        self.turn_token = None
        self.winner_token = None
        self.rematch_votes.clear()
        for player in self.players.values():
            player.secret = None
            player.ready = False

    def reset_to_lobby(self) -> None:
        """Return to lobby with whoever is still seated (used when dissolve-on-leave is off)."""
        self.phase = RoomPhase.LOBBY
        self._clear_round()

    def add_chat(self, token: str, text: str) -> ChatRecord:
        player = self.players.get(token)
        if player is None:
            raise StaleActionError(action="send_chat", reason="not a member")
        record = ChatRecord(player_token=token, sender_name=player.name, text=text)
        self.chat.append(record)
        return record
