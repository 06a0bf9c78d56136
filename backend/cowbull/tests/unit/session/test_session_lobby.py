from cowbull.logic.enums import RoomPhase
from cowbull.session.manager import SessionManager
from cowbull.session.registry import RoomRegistry
from cowbull.tests.mocks.connection import MockConnection
from cowbull.tests.unit.session.helpers import ALICE, BOB, create_full_room, create_room


class TestCreateRoom:
    async def test_creator_becomes_host(self, manager):
        room_id, alice = await create_room(manager)

        room = manager.get_room(room_id)
        assert room.phase is RoomPhase.LOBBY
        assert room.host_token == ALICE
        (lobby,) = alice.messages_of_type("lobby_update")
        assert lobby["players"] == [{"name": "Alice", "is_host": True, "connected": True}]

    async def test_room_ids_are_distinct(self, manager):
        first, _ = await create_room(manager)
        second, _ = await create_room(manager, name="Bob", token=BOB)
        assert first != second
        assert manager.room_count == 2

    async def test_second_room_on_same_connection_rejected(self, manager):
        room_id, alice = await create_room(manager)
        alice.clear()

        await manager.create_room(alice, "Alice", ALICE)

        (error,) = alice.messages_of_type("error")
        assert error["code"] == "already_in_room"
        assert manager.room_count == 1

    async def test_capacity_limit(self):
        manager = SessionManager(max_rooms=1)
        await create_room(manager)
        conn = MockConnection()

        await manager.create_room(conn, "Bob", BOB)

        assert conn.messages_of_type("error")[0]["code"] == "server_at_capacity"

    async def test_registry_exhaustion_surfaced(self):
        manager = SessionManager(registry=RoomRegistry(id_factory=lambda: "1111", max_attempts=2))
        await create_room(manager)
        conn = MockConnection()

        await manager.create_room(conn, "Bob", BOB)

        assert conn.messages_of_type("error")[0]["code"] == "registry_exhausted"
        assert manager.is_in_room(conn.connection_id) is False


class TestJoinRequests:
    async def test_unknown_room(self, manager):
        conn = MockConnection()
        await manager.request_join(conn, "9999", BOB, "Bob")

        (error,) = conn.messages_of_type("error")
        assert error["code"] == "room_not_found"

    async def test_request_notifies_members(self, manager):
        room_id, alice = await create_room(manager)
        alice.clear()
        bob = MockConnection()

        await manager.request_join(bob, room_id, BOB, "Bob")

        assert bob.messages_of_type("join_request_sent") == [{"type": "join_request_sent", "room_id": room_id}]
        (received,) = alice.messages_of_type("join_request_received")
        assert received["candidate_token"] == BOB
        assert received["candidate_name"] == "Bob"
        assert manager.get_room(room_id).player_count == 1

    async def test_duplicate_name_rejected(self, manager):
        room_id, _ = await create_room(manager)
        impostor = MockConnection()

        await manager.request_join(impostor, room_id, BOB, "Alice")

        assert impostor.messages_of_type("error")[0]["code"] == "name_taken"

    async def test_full_room_rejects_request(self, manager):
        room = await create_full_room(manager)
        carol = MockConnection()

        await manager.request_join(carol, room.room_id, "t-carol", "Carol")

        assert carol.messages_of_type("error")[0]["code"] == "room_full"
        assert room.alice.messages_of_type("join_request_received") == []

    async def test_accept_seats_candidate(self, manager):
        room_id, alice = await create_room(manager)
        bob = MockConnection()
        await manager.request_join(bob, room_id, BOB, "Bob")
        alice.clear()

        await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=True)

        assert bob.messages_of_type("join_approved") == [{"type": "join_approved", "room_id": room_id}]
        for conn in (alice, bob):
            (lobby,) = conn.messages_of_type("lobby_update")
            assert [p["name"] for p in lobby["players"]] == ["Alice", "Bob"]
        assert manager.get_room(room_id).is_full

    async def test_reject_keeps_room_unchanged(self, manager):
        room_id, alice = await create_room(manager)
        bob = MockConnection()
        await manager.request_join(bob, room_id, BOB, "Bob")

        await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=False)

        assert bob.messages_of_type("join_rejected") == [{"type": "join_rejected", "room_id": room_id}]
        room = manager.get_room(room_id)
        assert room.player_count == 1
        assert room.join_requests == {}

    async def test_resolve_is_idempotent(self, manager):
        room_id, alice = await create_room(manager)
        bob = MockConnection()
        await manager.request_join(bob, room_id, BOB, "Bob")
        await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=True)
        bob.clear()

        await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=True)
        await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=False)

        assert bob.sent_messages == []
        assert manager.get_room(room_id).player_count == 2

    async def test_second_acceptance_finds_room_full(self, manager):
        room_id, alice = await create_room(manager)
        bob = MockConnection()
        carol = MockConnection()
        await manager.request_join(bob, room_id, BOB, "Bob")
        await manager.request_join(carol, room_id, "t-carol", "Carol")

        await manager.resolve_join_request(alice, room_id, ALICE, BOB, accepted=True)

        # remaining candidates are turned away once the room fills
        assert carol.messages_of_type("join_rejected") == [{"type": "join_rejected", "room_id": room_id}]
        await manager.resolve_join_request(alice, room_id, ALICE, "t-carol", accepted=True)
        assert manager.get_room(room_id).player_count == 2
        assert manager.is_in_room(carol.connection_id) is False

    async def test_cancel_request(self, manager):
        room_id, alice = await create_room(manager)
        bob = MockConnection()
        await manager.request_join(bob, room_id, BOB, "Bob")
        alice.clear()

        await manager.cancel_join_request(bob, room_id, BOB)

        assert alice.messages_of_type("join_request_canceled") == [
            {"type": "join_request_canceled", "room_id": room_id, "candidate_token": BOB},
        ]
        assert manager.get_room(room_id).join_requests == {}

    async def test_cancel_without_pending_request_is_noop(self, manager):
        room_id, alice = await create_room(manager)
        alice.clear()
        stranger = MockConnection()

        await manager.cancel_join_request(stranger, room_id, "t-stranger")

        assert alice.sent_messages == []

    async def test_candidate_disconnect_drops_request(self, manager):
        room_id, alice = await create_room(manager)
        bob = MockConnection()
        await manager.request_join(bob, room_id, BOB, "Bob")
        alice.clear()

        await manager.handle_disconnect(bob)

        assert alice.messages_of_type("join_request_canceled")[0]["candidate_token"] == BOB
        assert manager.get_room(room_id).join_requests == {}

    async def test_new_request_withdraws_previous_one(self, manager):
        first_room, alice = await create_room(manager)
        second_room, carol = await create_room(manager, name="Carol", token="t-carol")
        bob = MockConnection()
        await manager.request_join(bob, first_room, BOB, "Bob")
        alice.clear()

        await manager.request_join(bob, second_room, BOB, "Bob")

        assert alice.messages_of_type("join_request_canceled")[0]["candidate_token"] == BOB
        assert manager.get_room(first_room).join_requests == {}
        assert BOB in manager.get_room(second_room).join_requests
        assert carol.messages_of_type("join_request_received")[0]["candidate_name"] == "Bob"

    async def test_join_with_member_token_is_rejoin(self, manager):
        room = await create_full_room(manager)
        await manager.handle_disconnect(room.bob)
        new_bob = MockConnection()

        await manager.request_join(new_bob, room.room_id, BOB, "Bob")

        assert len(new_bob.messages_of_type("rejoined_game")) == 1
        assert manager.get_room(room.room_id).player_count == 2


class TestBeginSetup:
    async def test_host_starts_setup(self, manager):
        room = await create_full_room(manager)

        await manager.begin_setup(room.alice, room.room_id, ALICE)

        assert manager.get_room(room.room_id).phase is RoomPhase.SETUP
        for conn in (room.alice, room.bob):
            assert conn.messages_of_type("enter_setup") == [{"type": "enter_setup", "round": 0}]

    async def test_guest_cannot_start_setup(self, manager):
        room = await create_full_room(manager)

        await manager.begin_setup(room.bob, room.room_id, BOB)

        assert manager.get_room(room.room_id).phase is RoomPhase.LOBBY
        assert room.alice.sent_messages == []
        assert room.bob.sent_messages == []

    async def test_alone_in_room_is_noop(self, manager):
        room_id, alice = await create_room(manager)
        alice.clear()

        await manager.begin_setup(alice, room_id, ALICE)

        assert manager.get_room(room_id).phase is RoomPhase.LOBBY
        assert alice.sent_messages == []

    async def test_token_from_other_connection_is_ignored(self, manager):
        room = await create_full_room(manager)

        # Bob's connection claims Alice's token
        await manager.begin_setup(room.bob, room.room_id, ALICE)

        assert manager.get_room(room.room_id).phase is RoomPhase.LOBBY
