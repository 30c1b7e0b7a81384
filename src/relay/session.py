"""Per-connection relay.

Owns one browser socket and one upstream session and moves frames between
them. Client frames that arrive before the upstream session is ready are
held in a FIFO queue and drained, in order, once the connect succeeds.
"""

import asyncio
import json
import logging
from collections import deque
from enum import Enum

from src.relay.errors import MalformedClientFrame, UpstreamSendFailure, UpstreamUnavailable
from src.relay.protocol import parse_client_frame
from src.relay.registry import ConnectionRegistry
from src.relay.transport.base import CLOSE_INTERNAL_ERROR, CLOSE_NORMAL, ClientSocket
from src.relay.upstream import UpstreamClosed, UpstreamEvent, UpstreamSession

logger = logging.getLogger(__name__)


class RelayState(Enum):
    """Relay state machine states.

    State Transitions:
    - ACCEPTED → CONNECTING (immediately, upstream connect starts)
    - CONNECTING → READY (upstream connected and pending queue drained)
    - * → CLOSED (browser close, upstream close, connect or send failure)

    States:
    - ACCEPTED: Browser socket accepted, counted in the registry
    - CONNECTING: Upstream connect in flight; client frames are queued
    - READY: Client frames and upstream events are relayed immediately
    - CLOSED: Torn down, no further transitions
    """

    ACCEPTED = "accepted"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


# Valid state transitions
VALID_TRANSITIONS: dict[RelayState, set[RelayState]] = {
    RelayState.ACCEPTED: {RelayState.CONNECTING, RelayState.CLOSED},
    RelayState.CONNECTING: {RelayState.READY, RelayState.CLOSED},
    RelayState.READY: {RelayState.CLOSED},
    RelayState.CLOSED: set(),  # Terminal state
}


class ConnectionRelay:
    """Relays events between one browser connection and its upstream session.

    Entering ACCEPTED (construction) increments the registry; reaching
    CLOSED decrements it exactly once, however many teardown triggers fire.
    """

    def __init__(
        self,
        client: ClientSocket,
        upstream: UpstreamSession,
        registry: ConnectionRegistry,
    ) -> None:
        """Initialize relay.

        Args:
            client: Accepted browser socket
            upstream: Fresh, never-connected upstream session
            registry: Process-wide connection registry
        """
        self.client = client
        self.upstream = upstream
        self.registry = registry
        self.state = RelayState.ACCEPTED
        self.pending: deque[str | bytes] = deque()
        self.close_reason: str | None = None

        self._connect_task: asyncio.Task[None] | None = None
        self._teardown_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

        total = self.registry.increment()
        self.upstream.on_event(self._on_upstream_event)

        logger.info(
            f"New WebSocket connection established. Total clients: {total}",
            extra={"connection_id": self.connection_id},
        )

    @property
    def connection_id(self) -> str:
        return self.client.connection_id

    @property
    def is_closed(self) -> bool:
        return self.state is RelayState.CLOSED

    def transition_to(self, new_state: RelayState) -> None:
        """Transition to a new state.

        Raises:
            ValueError: If the transition is not allowed
        """
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise ValueError(
                f"Invalid relay state transition: {self.state.value} → {new_state.value}"
            )

        logger.debug(
            "Relay state transition",
            extra={
                "connection_id": self.connection_id,
                "from_state": self.state.value,
                "to_state": new_state.value,
            },
        )
        self.state = new_state

    def start(self) -> None:
        """Begin the upstream connect as a supervised task."""
        self.transition_to(RelayState.CONNECTING)
        self._connect_task = asyncio.create_task(
            self._connect_upstream(), name=f"upstream-connect-{self.connection_id}"
        )
        self._connect_task.add_done_callback(self._on_connect_done)

    async def run(self) -> None:
        """Relay until either side closes.

        Starts the upstream connect, then consumes browser frames for the
        lifetime of the browser socket.
        """
        self.start()
        try:
            async for frame in self.client.frames():
                await self.handle_client_frame(frame)
                if self.is_closed:
                    break
        except ConnectionError as e:
            logger.warning(
                "Browser connection error",
                extra={"connection_id": self.connection_id, "error": str(e)},
            )
        finally:
            await self.close("client disconnected")

    async def handle_client_frame(self, frame: str | bytes) -> None:
        """Queue or forward one frame from the browser."""
        if self.is_closed:
            return

        if self.state is not RelayState.READY:
            self.pending.append(frame)
            logger.debug(
                "Queued client frame until upstream is ready",
                extra={"connection_id": self.connection_id, "queued": len(self.pending)},
            )
            return

        await self._forward(frame)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self, reason: str, code: int = CLOSE_NORMAL) -> None:
        """Tear the connection down.

        Idempotent: the first call moves to CLOSED and decrements the
        registry before its first suspension point, so concurrent callers
        return immediately.

        Args:
            reason: Why the connection ended, for logging
            code: WebSocket close code sent to the browser
        """
        if self.is_closed:
            return

        self.transition_to(RelayState.CLOSED)
        self.close_reason = reason
        dropped = len(self.pending)
        self.pending.clear()
        total = self.registry.decrement()

        logger.info(
            f"WebSocket connection closed ({reason}). Total clients: {total}",
            extra={"connection_id": self.connection_id, "dropped_frames": dropped},
        )

        task = self._connect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        try:
            await self.upstream.disconnect()
        finally:
            await self.client.close(code=code)
            self._closed.set()

    async def _connect_upstream(self) -> None:
        logger.info("Connecting to upstream...", extra={"connection_id": self.connection_id})

        try:
            await self.upstream.connect()
        except UpstreamUnavailable as e:
            logger.error(
                f"Error connecting to upstream: {e}",
                extra={"connection_id": self.connection_id},
            )
            await self.close(f"upstream unavailable: {e}", code=CLOSE_INTERNAL_ERROR)
            return

        logger.info(
            "Connected to upstream successfully!", extra={"connection_id": self.connection_id}
        )
        await self._drain_pending()

    async def _drain_pending(self) -> None:
        """Forward queued frames in FIFO order, then go live.

        Frames arriving mid-drain are appended to the same queue, so the
        move to READY happens only once it is empty.
        """
        while self.pending:
            frame = self.pending.popleft()
            await self._forward(frame)
            if self.is_closed:
                return

        if not self.is_closed:
            self.transition_to(RelayState.READY)

    def _on_connect_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        if (error := task.exception()) is not None:
            logger.error(
                "Upstream connect task failed",
                extra={"connection_id": self.connection_id, "error": str(error)},
                exc_info=error,
            )
            self._teardown_task = asyncio.create_task(
                self.close("relay error", code=CLOSE_INTERNAL_ERROR)
            )

    async def _forward(self, frame: str | bytes) -> None:
        """Parse one client frame and send it upstream."""
        try:
            event = parse_client_frame(frame)
        except MalformedClientFrame as e:
            logger.error(
                f"Error parsing event from client: {e.raw!r}",
                extra={"connection_id": self.connection_id, "error": e.reason},
            )
            return

        logger.debug(
            f'Relaying "{event.type}" to upstream', extra={"connection_id": self.connection_id}
        )

        try:
            await self.upstream.send(event.type, event.payload)
        except UpstreamSendFailure as e:
            logger.error(
                f"Failed to relay event to upstream: {e}",
                extra={"connection_id": self.connection_id, "type": event.type},
            )
            await self.close(f"upstream send failed: {e}", code=CLOSE_INTERNAL_ERROR)

    async def _on_upstream_event(self, event: UpstreamEvent | UpstreamClosed) -> None:
        if isinstance(event, UpstreamClosed):
            await self.close(f"upstream closed: {event.reason}")
            return

        if self.is_closed:
            return

        logger.debug(
            f'Relaying "{event.get("type")}" to client',
            extra={"connection_id": self.connection_id},
        )

        try:
            await self.client.send_text(json.dumps(event))
        except ConnectionError as e:
            logger.warning(
                "Failed to relay event to client",
                extra={"connection_id": self.connection_id, "error": str(e)},
            )
            await self.close("client send failed")
