from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from cowbull.messaging.protocol import ConnectionProtocol


@dataclass
class Player:
    """Represent a player seated in a room.

    Identity is the token, which survives reconnects. The connection is
    replaced on every rejoin and is None while the player is detached.

    Lifecycle:
    - Created when the room is created (host) or a join request is approved
    - On detach: connection is cleared, everything else is kept
    - On rematch: secret and ready are cleared
    - Removed on explicit leave or room teardown
    """

    token: str
    name: str
    connection: ConnectionProtocol | None = None
    secret: str | None = None
    ready: bool = False

    @property
    def connection_id(self) -> str | None:
        return self.connection.connection_id if self.connection is not None else None

    @property
    def is_connected(self) -> bool:
        return self.connection is not None


@dataclass
class JoinRequest:
    """A candidate waiting for a room member to accept or reject them."""

    token: str
    name: str
    connection: ConnectionProtocol

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


class GuessRecord(BaseModel):
    """One scored guess. Immutable once appended to the room's guess log."""

    model_config = {"frozen": True}

    player_token: str
    player_name: str
    guess: str
    bulls: int
    cows: int
    winner: bool
    turn_token: str


class ChatRecord(BaseModel):
    model_config = {"frozen": True}

    player_token: str
    sender_name: str
    text: str


class WinRecord(BaseModel):
    """Match history entry written when a round is won."""

    model_config = {"frozen": True}

    round: int
    winner: str
    secret: str
    guess_count: int


class PlayerInfo(BaseModel):
    """Player info for lobby state messages."""

    name: str
    is_host: bool
    connected: bool


class JoinRequestInfo(BaseModel):
    candidate_token: str
    candidate_name: str
