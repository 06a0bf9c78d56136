"""
String enum definitions for room lifecycle concepts.
"""

from enum import Enum


class RoomPhase(str, Enum):
    """Lifecycle phase of a room."""

    LOBBY = "lobby"
    SETUP = "setup"
    GAME = "game"


class RoomClosedReason(str, Enum):
    """Why a room was torn down, sent to the parties still connected."""

    OPPONENT_LEFT = "opponent_left"
    OPPONENT_TIMEOUT = "opponent_timeout"
    ROOM_EMPTY = "room_empty"
