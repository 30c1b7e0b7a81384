"""aiohttp-backed browser socket."""

import logging
from collections.abc import AsyncIterator

from aiohttp import WSMsgType, web

from src.relay.transport.base import CLOSE_NORMAL, ClientSocket

logger = logging.getLogger(__name__)


class WebSocketClientSocket(ClientSocket):
    """ClientSocket over a prepared ``aiohttp.web.WebSocketResponse``."""

    def __init__(
        self, websocket: web.WebSocketResponse, connection_id: str, remote: str | None = None
    ) -> None:
        """Initialize client socket.

        Args:
            websocket: Prepared WebSocket response
            connection_id: Unique connection identifier
            remote: Peer address, for logging
        """
        self._websocket = websocket
        self._connection_id = connection_id
        self._remote = remote

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def is_open(self) -> bool:
        return not self._websocket.closed

    async def frames(self) -> AsyncIterator[str | bytes]:
        # Iteration stops on CLOSE/CLOSING/CLOSED messages
        async for msg in self._websocket:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                yield msg.data
            elif msg.type == WSMsgType.ERROR:
                logger.warning(
                    "WebSocket error from client",
                    extra={
                        "connection_id": self._connection_id,
                        "remote": self._remote,
                        "error": str(self._websocket.exception()),
                    },
                )
                break

    async def send_text(self, data: str) -> None:
        if self._websocket.closed:
            raise ConnectionError("WebSocket connection is closed")

        try:
            await self._websocket.send_str(data)
        except RuntimeError as e:
            # Older aiohttp raises RuntimeError when writing to a closing response
            raise ConnectionError(f"WebSocket send failed: {e}") from e

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        if self._websocket.closed:
            return
        await self._websocket.close(code=code)
