"""Outbound message deliveries for players and candidates."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cowbull.messaging.protocol import ConnectionProtocol
    from cowbull.session.models import Player


@dataclass(frozen=True)
class Delivery:
    """One message addressed to one connection."""

    connection: ConnectionProtocol
    message: dict[str, Any]


def to_players(
    players: Iterable[Player],
    message: dict[str, Any],
    exclude_token: str | None = None,
) -> list[Delivery]:
    """Address a message to every connected player, skipping one token if excluded.

    Detached players (no connection) are skipped silently.
    """
    return [
        Delivery(player.connection, message)
        for player in players
        if player.connection is not None and player.token != exclude_token
    ]


def to_player(player: Player | None, message: dict[str, Any]) -> list[Delivery]:
    if player is None or player.connection is None:
        return []
    return [Delivery(player.connection, message)]


async def deliver(deliveries: Iterable[Delivery]) -> None:
    """Send each delivery in order.

    A dead connection must not stop delivery to the others, so send
    failures are suppressed per recipient; the transport reports the
    disconnect through its own path.
    """
    for delivery in deliveries:
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await delivery.connection.send_message(delivery.message)
