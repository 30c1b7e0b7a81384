"""Process-wide registry of live browser connections."""

import logging
import threading

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Counter of active connections.

    Only increment, decrement and read are exposed. Mutations and reads go
    through the same lock, so a reader never observes a half-applied update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        """Current number of live connections."""
        with self._lock:
            return self._count

    def increment(self) -> int:
        """Record an accepted connection.

        Returns:
            Count after the increment
        """
        with self._lock:
            self._count += 1
            return self._count

    def decrement(self) -> int:
        """Record a torn-down connection.

        Returns:
            Count after the decrement

        Raises:
            RuntimeError: If there is no live connection to remove
        """
        with self._lock:
            if self._count == 0:
                raise RuntimeError("Connection registry decremented below zero")
            self._count -= 1
            return self._count
