"""In-memory stand-ins for the browser socket and the upstream session.

Used by relay unit tests and front-door integration tests to drive the
connect/queue/drain protocol deterministically.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from src.relay.errors import UpstreamSendFailure
from src.relay.transport.base import CLOSE_NORMAL, ClientSocket
from src.relay.upstream import UpstreamEvent, UpstreamSession


class FakeClientSocket(ClientSocket):
    """Browser socket fed from a queue."""

    def __init__(self, connection_id: str = "ws-test") -> None:
        self._connection_id = connection_id
        self._inbox: asyncio.Queue[str | bytes | None] = asyncio.Queue()
        self._open = True
        self.sent: list[str] = []
        self.close_codes: list[int] = []

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def is_open(self) -> bool:
        return self._open

    def push(self, frame: str | bytes) -> None:
        """Simulate a frame arriving from the browser."""
        self._inbox.put_nowait(frame)

    def disconnect(self) -> None:
        """Simulate the browser closing its socket."""
        self._open = False
        self._inbox.put_nowait(None)

    async def frames(self) -> AsyncIterator[str | bytes]:
        while True:
            frame = await self._inbox.get()
            if frame is None:
                return
            yield frame

    async def send_text(self, data: str) -> None:
        if not self._open:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        if not self._open:
            return
        self._open = False
        self.close_codes.append(code)
        self._inbox.put_nowait(None)


class FakeUpstreamSession(UpstreamSession):
    """Upstream session whose connect outcome and timing are controlled by the test."""

    def __init__(
        self,
        connect_delay_s: float = 0.0,
        fail_with: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        super().__init__()
        self.connect_delay_s = connect_delay_s
        self.fail_with = fail_with
        self.gate = gate
        self.fail_sends = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.connected_at: float | None = None
        self.send_times: list[float] = []
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_calls > 1:
            raise RuntimeError("connect() may only be called once per upstream session")

        if self.gate is not None:
            await self.gate.wait()
        elif self.connect_delay_s:
            await asyncio.sleep(self.connect_delay_s)

        if self.fail_with is not None:
            raise self.fail_with

        self._connected = True
        self.connected_at = time.monotonic()

    async def send(self, event_type: str, payload: dict[str, Any]) -> None:
        if not self._connected:
            raise UpstreamSendFailure("upstream session is not connected")
        if self.fail_sends:
            raise UpstreamSendFailure("write rejected")
        self.sent.append((event_type, payload))
        self.send_times.append(time.monotonic())

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False

    async def emit(self, event: UpstreamEvent) -> None:
        """Simulate the upstream service emitting an event."""
        await self._emit(event)

    async def close_from_upstream(self, reason: str = "server closed") -> None:
        """Simulate the upstream service ending the session."""
        self._connected = False
        await self._emit_closed(reason)


async def wait_for_condition(
    condition: Callable[[], bool], timeout_s: float = 2.0, interval_s: float = 0.005
) -> None:
    """Poll until ``condition`` holds.

    Raises:
        TimeoutError: If the condition does not hold within ``timeout_s``
    """
    deadline = time.monotonic() + timeout_s
    while not condition():
        if time.monotonic() > deadline:
            raise TimeoutError("Condition not met before timeout")
        await asyncio.sleep(interval_s)
