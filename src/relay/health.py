"""Status endpoint for the relay.

Reports service availability and the live-connection count for load
balancers, monitoring systems and the browser client.
"""

import logging
from collections.abc import Callable

from aiohttp import web

from src.relay.protocol import StatusResponse
from src.relay.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class StatusHandler:
    """Serves the JSON status document."""

    def __init__(self, registry: ConnectionRegistry, port: Callable[[], int]) -> None:
        """Initialize status handler.

        Args:
            registry: Connection registry to report from (read-only)
            port: Returns the port the server listens on
        """
        self.registry = registry
        self._port = port

    async def status(self, request: web.Request) -> web.Response:
        """Status endpoint.

        Returns:
            200 OK with ``{"status": "available", "connectedClients": int, "port": int}``
        """
        body = StatusResponse(connected_clients=self.registry.count, port=self._port())

        logger.debug(
            "Status check performed",
            extra={"connected_clients": body.connected_clients},
        )

        return web.json_response(body.model_dump(by_alias=True), status=200)
