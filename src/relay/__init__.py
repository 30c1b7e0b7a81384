"""Realtime relay.

Bridges browser WebSocket clients to an upstream realtime service, one
upstream session per browser connection.
"""

from src.relay.config import RelayConfig
from src.relay.errors import (
    MalformedClientFrame,
    MissingCredential,
    RelayError,
    RequestHandlingFailure,
    UpstreamSendFailure,
    UpstreamUnavailable,
)
from src.relay.registry import ConnectionRegistry
from src.relay.server import RelayServer, run_server
from src.relay.session import ConnectionRelay, RelayState
from src.relay.upstream import RealtimeUpstreamSession, UpstreamClosed, UpstreamSession

__all__ = [
    "ConnectionRegistry",
    "ConnectionRelay",
    "MalformedClientFrame",
    "MissingCredential",
    "RealtimeUpstreamSession",
    "RelayConfig",
    "RelayError",
    "RelayServer",
    "RelayState",
    "RequestHandlingFailure",
    "UpstreamClosed",
    "UpstreamSendFailure",
    "UpstreamSession",
    "UpstreamUnavailable",
    "run_server",
]
