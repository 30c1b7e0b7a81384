"""Base abstraction for browser-side sockets.

The relay only needs to read raw frames, write text frames and close; this
interface keeps it independent of the web framework that accepted the
connection.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011


class ClientSocket(ABC):
    """One accepted browser WebSocket."""

    @abstractmethod
    def frames(self) -> AsyncIterator[str | bytes]:
        """Iterate over frames from the browser until it disconnects.

        Yields:
            Raw message data, text or binary, in arrival order
        """

    @abstractmethod
    async def send_text(self, data: str) -> None:
        """Send one text frame to the browser.

        Raises:
            ConnectionError: If the socket is closed or broken
        """

    @abstractmethod
    async def close(self, code: int = CLOSE_NORMAL) -> None:
        """Close the socket. Safe to call more than once."""

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique connection identifier for logging and tracking."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if the socket can still carry frames."""
