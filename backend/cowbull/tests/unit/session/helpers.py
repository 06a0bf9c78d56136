from dataclasses import dataclass

from cowbull.session.manager import SessionManager
from cowbull.tests.mocks.connection import MockConnection

ALICE = "t-alice"
BOB = "t-bob"
ALICE_SECRET = "1234"
BOB_SECRET = "5678"


@dataclass
class TwoPlayerRoom:
    room_id: str
    alice: MockConnection
    bob: MockConnection

    def clear(self) -> None:
        self.alice.clear()
        self.bob.clear()


async def create_room(manager: SessionManager, name: str = "Alice", token: str = ALICE) -> tuple[str, MockConnection]:
    conn = MockConnection()
    manager.register_connection(conn)
    await manager.create_room(conn, name, token)
    (created,) = conn.messages_of_type("room_created")
    return created["room_id"], conn


async def create_full_room(manager: SessionManager) -> TwoPlayerRoom:
    """Alice hosts, Bob asks to join and Alice accepts. Outboxes are cleared."""
    room_id, alice = await create_room(manager)
    bob = MockConnection()
    manager.register_connection(bob)
    await manager.request_join(bob, room_id, BOB, "Bob")
    await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=True)
    room = TwoPlayerRoom(room_id, alice, bob)
    room.clear()
    return room


async def create_started_game(manager: SessionManager) -> TwoPlayerRoom:
    """Full room with both secrets submitted; Alice holds the first turn."""
    room = await create_full_room(manager)
    await manager.begin_setup(room.alice, room.room_id, ALICE)
    await manager.submit_secret(room.alice, room.room_id, ALICE, ALICE_SECRET)
    await manager.submit_secret(room.bob, room.room_id, BOB, BOB_SECRET)
    room.clear()
    return room


async def finish_round(manager: SessionManager, room: TwoPlayerRoom) -> None:
    """Alice wins the round on her first guess."""
    await manager.submit_guess(room.alice, room.room_id, ALICE, BOB_SECRET)
    room.clear()
