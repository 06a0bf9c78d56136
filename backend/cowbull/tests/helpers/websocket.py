"""Shared WebSocket test helpers for integration tests."""

from cowbull.messaging.encoder import decode, encode

# Upper bound on frames skipped while waiting for a particular message type.
_MAX_SKIPPED_FRAMES = 50


def send_ws(ws, data: dict) -> None:
    """Send a MessagePack-encoded message over a test WebSocket."""
    ws.send_bytes(encode(data))


def recv_ws(ws) -> dict:
    """Receive and decode a MessagePack message from a test WebSocket."""
    return decode(ws.receive_bytes())


def recv_until(ws, message_type: str) -> dict:
    """Receive frames until one of the given type arrives and return it."""
    for _ in range(_MAX_SKIPPED_FRAMES):
        message = recv_ws(ws)
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type!r} message within {_MAX_SKIPPED_FRAMES} frames")


def create_room(ws, name: str, token: str) -> str:
    """Create a room over the socket and return its id (lobby update drained)."""
    send_ws(ws, {"type": "create_room", "name": name, "token": token})
    room_id = recv_until(ws, "room_created")["room_id"]
    recv_until(ws, "lobby_update")
    return room_id


def join_room(host_ws, guest_ws, room_id: str, *, host_token: str, guest_token: str, guest_name: str) -> None:
    """Ask to join from guest_ws and approve from host_ws; drain both lobby updates."""
    send_ws(guest_ws, {"type": "join_room", "room_id": room_id, "token": guest_token, "name": guest_name})
    recv_until(guest_ws, "join_request_sent")
    recv_until(host_ws, "join_request_received")
    send_ws(
        host_ws,
        {
            "type": "resolve_join_request",
            "room_id": room_id,
            "token": host_token,
            "candidate_token": guest_token,
            "accepted": True,
        },
    )
    recv_until(guest_ws, "join_approved")
    recv_until(guest_ws, "lobby_update")
    recv_until(host_ws, "lobby_update")


def start_game(host_ws, guest_ws, room_id: str, *, host_token: str, guest_token: str, secrets: tuple[str, str]) -> None:
    """Enter setup and submit both secrets; drain until both players saw game_start."""
    send_ws(host_ws, {"type": "start_setup", "room_id": room_id, "token": host_token})
    recv_until(host_ws, "enter_setup")
    recv_until(guest_ws, "enter_setup")
    send_ws(host_ws, {"type": "submit_secret", "room_id": room_id, "token": host_token, "secret": secrets[0]})
    recv_until(guest_ws, "op_ready_state")
    send_ws(guest_ws, {"type": "submit_secret", "room_id": room_id, "token": guest_token, "secret": secrets[1]})
    recv_until(host_ws, "game_start")
    recv_until(guest_ws, "game_start")
