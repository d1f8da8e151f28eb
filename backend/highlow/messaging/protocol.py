"""Abstract client connection used by the session layer."""

from abc import ABC, abstractmethod
from typing import Any

from highlow.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """
    A single client connection.

    The session layer only ever talks to this interface, so game flow can be
    exercised in tests with an in-memory connection instead of a real socket.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Transient identifier, new for every socket."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        """Encode and send one outbound message."""
        await self.send_bytes(encode(data))
