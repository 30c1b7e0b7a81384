"""Transport layer for browser connections."""

from src.relay.transport.base import (
    CLOSE_GOING_AWAY,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    ClientSocket,
)
from src.relay.transport.websocket_transport import WebSocketClientSocket

__all__ = [
    "CLOSE_GOING_AWAY",
    "CLOSE_INTERNAL_ERROR",
    "CLOSE_NORMAL",
    "ClientSocket",
    "WebSocketClientSocket",
]
