"""Upstream realtime session adapter.

Wraps a single logical session with the upstream realtime service behind a
small interface: connect, send, event callbacks, disconnect and a
connect-state query. One adapter instance belongs to exactly one browser
connection and is never reused.
"""

import asyncio
import contextlib
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)

from src.relay.config import DEFAULT_UPSTREAM_MODEL, DEFAULT_UPSTREAM_URL
from src.relay.errors import UpstreamSendFailure, UpstreamUnavailable

logger = logging.getLogger(__name__)


class UpstreamState(Enum):
    """Upstream connect-state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class UpstreamClosed:
    """Notification delivered once when the upstream session terminates."""

    reason: str = "closed"


UpstreamEvent = dict[str, Any]
EventHandler = Callable[[UpstreamEvent | UpstreamClosed], Awaitable[None]]


def generate_event_id() -> str:
    """Create a client event id in the upstream's ``evt_`` format."""
    return f"evt_{uuid.uuid4().hex[:17]}"


class UpstreamSession(ABC):
    """Base class for upstream sessions.

    Concrete sessions implement the transport; handler registration and
    the once-only closed notification live here.
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._closed_notified = False

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session.

        Raises:
            UpstreamUnavailable: If the handshake cannot complete
            RuntimeError: If connect was already attempted
        """

    @abstractmethod
    async def send(self, event_type: str, payload: dict[str, Any]) -> None:
        """Forward one event to the upstream service.

        Raises:
            UpstreamSendFailure: If not connected or the write is rejected
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the session. Safe to call any number of times."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Non-blocking connect-state query."""

    def on_event(self, handler: EventHandler) -> None:
        """Register a handler for upstream events and the closed notification."""
        self._handlers.append(handler)

    async def _emit(self, event: UpstreamEvent | UpstreamClosed) -> None:
        for handler in list(self._handlers):
            await handler(event)

    async def _emit_closed(self, reason: str) -> None:
        if self._closed_notified:
            return
        self._closed_notified = True
        await self._emit(UpstreamClosed(reason))


class RealtimeUpstreamSession(UpstreamSession):
    """Upstream session over the OpenAI Realtime WebSocket API."""

    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_UPSTREAM_URL,
        model: str = DEFAULT_UPSTREAM_MODEL,
        connect_timeout_s: float = 30.0,
        connection_id: str | None = None,
    ) -> None:
        """Initialize upstream session.

        Args:
            api_key: Shared upstream credential
            url: Realtime WebSocket endpoint
            model: Realtime model, sent as the ``model`` query parameter
            connect_timeout_s: Bound on the opening handshake
            connection_id: Owning browser connection, for log correlation
        """
        super().__init__()
        self._api_key = api_key
        self._url = url
        self._model = model
        self._connect_timeout_s = connect_timeout_s
        self._connection_id = connection_id
        self._state = UpstreamState.DISCONNECTED
        self._connect_attempted = False
        self._ws: ClientConnection | None = None
        self._reader_task: asyncio.Task[None] | None = None

    @property
    def endpoint(self) -> str:
        """Full upstream URL including the model query parameter."""
        separator = "&" if "?" in self._url else "?"
        return f"{self._url}{separator}model={self._model}"

    @property
    def state(self) -> UpstreamState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is UpstreamState.CONNECTED

    async def connect(self) -> None:
        if self._connect_attempted:
            raise RuntimeError("connect() may only be called once per upstream session")
        self._connect_attempted = True
        self._state = UpstreamState.CONNECTING

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            self._ws = await connect(
                self.endpoint,
                additional_headers=headers,
                open_timeout=self._connect_timeout_s,
                max_size=None,
            )
        except InvalidStatus as e:
            self._state = UpstreamState.DISCONNECTED
            raise UpstreamUnavailable(
                f"handshake rejected with HTTP {e.response.status_code}"
            ) from e
        except TimeoutError as e:
            self._state = UpstreamState.DISCONNECTED
            raise UpstreamUnavailable(
                f"connect timed out after {self._connect_timeout_s}s"
            ) from e
        except (InvalidHandshake, InvalidURI, OSError) as e:
            self._state = UpstreamState.DISCONNECTED
            raise UpstreamUnavailable(str(e) or type(e).__name__) from e
        except asyncio.CancelledError:
            self._state = UpstreamState.DISCONNECTED
            raise

        self._state = UpstreamState.CONNECTED
        self._reader_task = asyncio.create_task(
            self._read_events(self._ws), name=f"upstream-reader-{self._connection_id}"
        )

        logger.info(
            "Upstream session connected",
            extra={"connection_id": self._connection_id, "model": self._model},
        )

    async def send(self, event_type: str, payload: dict[str, Any]) -> None:
        if not self.is_connected or self._ws is None:
            raise UpstreamSendFailure("upstream session is not connected")

        event = {"event_id": generate_event_id(), **payload, "type": event_type}

        try:
            await self._ws.send(json.dumps(event))
        except ConnectionClosed as e:
            self._state = UpstreamState.DISCONNECTED
            raise UpstreamSendFailure(f"upstream connection closed: {e}") from e

    async def disconnect(self) -> None:
        if self._state is UpstreamState.DISCONNECTED and self._ws is None:
            return

        # Explicit disconnects are not reported back as a closed notification
        self._closed_notified = True
        self._state = UpstreamState.DISCONNECTED
        ws, self._ws = self._ws, None
        task, self._reader_task = self._reader_task, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if ws is not None:
            await ws.close()

        logger.info("Upstream session disconnected", extra={"connection_id": self._connection_id})

    async def _read_events(self, ws: ClientConnection) -> None:
        """Deliver upstream events to handlers until the session ends."""
        reason = "upstream closed the session"
        try:
            async for message in ws:
                event = self._decode(message)
                if event is not None:
                    await self._emit(event)
        except ConnectionClosedError as e:
            reason = f"upstream connection lost: {e}"
        except Exception as e:
            logger.exception(
                "Error in upstream reader", extra={"connection_id": self._connection_id}
            )
            reason = f"upstream reader failed: {e}"

        self._state = UpstreamState.DISCONNECTED
        await self._emit_closed(reason)

    def _decode(self, message: str | bytes) -> UpstreamEvent | None:
        try:
            event = json.loads(message)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(
                "Invalid JSON from upstream, skipping",
                extra={"connection_id": self._connection_id, "error": str(e)},
            )
            return None

        if not isinstance(event, dict):
            logger.warning(
                "Non-object event from upstream, skipping",
                extra={"connection_id": self._connection_id},
            )
            return None

        return event
