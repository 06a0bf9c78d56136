"""In-memory registry of live rooms."""

import secrets
from collections.abc import Callable

import structlog

from cowbull.logic.exceptions import RegistryExhaustedError
from cowbull.logic.settings import RoomSettings
from cowbull.session.room import Room

logger = structlog.get_logger()

MAX_ID_ATTEMPTS = 20

# Callable returning a fresh candidate room id; uniqueness is checked by the registry.
RoomIdFactory = Callable[[], str]


def generate_room_id() -> str:
    """Return a short, human-typeable room id (four decimal digits)."""
    return str(1000 + secrets.randbelow(9000))


class RoomRegistry:
    """Map room ids to rooms and enforce id uniqueness among live rooms.

    Ids are only unique while a room is alive; a deleted room's id can be
    handed out again.
    """

    def __init__(
        self,
        id_factory: RoomIdFactory = generate_room_id,
        max_attempts: int = MAX_ID_ATTEMPTS,
    ) -> None:
        self._id_factory = id_factory
        self._max_attempts = max_attempts
        self._rooms: dict[str, Room] = {}  # room_id -> Room

    def create(self, settings: RoomSettings | None = None) -> Room:
        """Allocate a room under a fresh id.

        Raises RegistryExhaustedError when every candidate id in the retry
        budget collides with a live room.
        """
        for _ in range(self._max_attempts):
            room_id = self._id_factory()
            if room_id not in self._rooms:
                room = Room(room_id=room_id, settings=settings or RoomSettings())
                self._rooms[room_id] = room
                return room
        logger.warning("room id space saturated", attempts=self._max_attempts, live_rooms=len(self._rooms))
        raise RegistryExhaustedError(f"no free room id after {self._max_attempts} attempts")

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> Room | None:
        return self._rooms.pop(room_id, None)

    @property
    def room_count(self) -> int:
        return len(self._rooms)
