"""Abstract connection protocol for the MessagePack room channel."""

from abc import ABC, abstractmethod
from typing import Any

from trivia.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    Abstract interface for one client connection (host or player).

    Lets the router, broadcast channel and state machine run against test
    doubles instead of real WebSockets.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        return decode(await self.receive_bytes())
