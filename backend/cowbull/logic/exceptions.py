"""Typed domain exceptions for room operations.

User-actionable failures (room missing, room full, expired session, taken
name, exhausted registry) are surfaced to the originating connection by the
session layer. InvalidCodeError and StaleActionError describe expected races
and malformed input; the session layer logs and drops them.
"""


class RoomError(Exception):
    """Base exception for room operation failures."""


class RoomNotFoundError(RoomError):
    """No live room has the requested identifier."""


class RoomFullError(RoomError):
    """The room already has two players."""


class SessionExpiredError(RoomError):
    """The token has no player record in the room (or the room is gone)."""


class NameTakenError(RoomError):
    """Another player in the room already uses this display name."""


class RegistryExhaustedError(RoomError):
    """No free room identifier was found within the retry budget."""


class InvalidCodeError(RoomError):
    """A secret or guess failed structural validation."""


class StaleActionError(RoomError):
    """Action arrived outside the phase or turn that allows it.

    Attributes:
        action: The operation that was attempted (e.g. "submit_guess").
        reason: Human-readable explanation of why it was rejected.

    """

    def __init__(self, *, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(f"stale {action}: {reason}")
