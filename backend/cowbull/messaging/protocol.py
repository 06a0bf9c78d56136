"""Outbound side of a client connection, as seen by the session layer."""

from abc import ABC, abstractmethod
from typing import Any

from cowbull.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """
    What the session layer needs from a client connection: an id, a way to
    push MessagePack frames, and a way to hang up.

    Rooms only hold connections through this interface, so every room flow
    can run against in-memory connections in tests. The id changes on every
    reconnect; a player's identity is their token.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """Push one binary frame. Raises ConnectionError once the peer is gone."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))
