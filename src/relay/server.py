"""Relay server: HTTP and WebSocket front door on a single listener.

Main server implementation that:
1. Upgrades WebSocket handshakes (any path) and hands each connection to a
   new ConnectionRelay with its own upstream session
2. Serves the JSON status endpoint
3. Delegates every other request to the page collaborator
4. Turns uncaught request errors into 500 responses
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

from aiohttp import web

from src.relay.config import RelayConfig
from src.relay.errors import RequestHandlingFailure
from src.relay.health import StatusHandler
from src.relay.pages import PageRenderer
from src.relay.registry import ConnectionRegistry
from src.relay.session import ConnectionRelay
from src.relay.transport.base import CLOSE_GOING_AWAY
from src.relay.transport.websocket_transport import WebSocketClientSocket
from src.relay.upstream import RealtimeUpstreamSession, UpstreamSession

logger = logging.getLogger(__name__)

UpstreamFactory = Callable[[str], UpstreamSession]
Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Contain uncaught errors at the request boundary."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        failure = RequestHandlingFailure(request.path, e)
        logger.error(str(failure), exc_info=e)
        return web.Response(status=500, text="internal server error")


class RelayServer:
    """Single-port HTTP/WebSocket relay server.

    Thread-safety: This class is NOT thread-safe. Use from a single event loop.
    """

    def __init__(
        self,
        config: RelayConfig,
        registry: ConnectionRegistry | None = None,
        upstream_factory: UpstreamFactory | None = None,
        page_renderer: PageRenderer | None = None,
    ) -> None:
        """Initialize relay server.

        Args:
            config: Server configuration
            registry: Connection registry (a fresh one by default)
            upstream_factory: Builds one upstream session per connection id
            page_renderer: Collaborator for non-relay requests
        """
        self.config = config
        self.registry = registry or ConnectionRegistry()
        self.pages = page_renderer or PageRenderer(config.server.static_dir)
        self.status_handler = StatusHandler(self.registry, port=lambda: self.port)
        self._upstream_factory = upstream_factory or self._create_upstream
        self._relays: set[ConnectionRelay] = set()
        self._runner: web.AppRunner | None = None
        self._bound_port: int | None = None
        self.app = self.build_app()

    @property
    def port(self) -> int:
        """Listening port (the bound one when configured as 0)."""
        return self._bound_port or self.config.server.port

    @property
    def active_relays(self) -> frozenset[ConnectionRelay]:
        return frozenset(self._relays)

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_route("*", "/{tail:.*}", self.dispatch)
        return app

    async def dispatch(self, request: web.Request) -> web.StreamResponse:
        """Route a request: WebSocket upgrade, status, or page collaborator."""
        ws = web.WebSocketResponse(
            max_msg_size=self.config.server.max_message_bytes,
            heartbeat=self.config.server.heartbeat_s,
        )
        if ws.can_prepare(request).ok:
            return await self.handle_websocket(request, ws)

        if request.path == self.config.server.status_path:
            return await self.status_handler.status(request)

        return await self.pages.render(request)

    async def handle_websocket(
        self, request: web.Request, ws: web.WebSocketResponse
    ) -> web.WebSocketResponse:
        """Accept the upgrade and relay until the connection ends."""
        await ws.prepare(request)

        connection_id = f"ws-{uuid.uuid4().hex[:12]}"
        client = WebSocketClientSocket(ws, connection_id, remote=request.remote)
        relay = ConnectionRelay(client, self._upstream_factory(connection_id), self.registry)
        self._relays.add(relay)

        try:
            await relay.run()
        finally:
            self._relays.discard(relay)

        return ws

    def _create_upstream(self, connection_id: str) -> UpstreamSession:
        upstream = self.config.upstream
        return RealtimeUpstreamSession(
            api_key=upstream.api_key,
            url=upstream.url,
            model=upstream.model,
            connect_timeout_s=upstream.connect_timeout_s,
            connection_id=connection_id,
        )

    async def start(self) -> None:
        """Bind the listener and start serving.

        Raises:
            RuntimeError: If the server is already running
            OSError: If port binding fails
        """
        if self._runner is not None:
            raise RuntimeError("Relay server is already running")

        server = self.config.server
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, server.host, server.port)

        try:
            await site.start()
        except OSError as e:
            logger.error(
                "Failed to bind relay server",
                extra={"host": server.host, "port": server.port, "error": str(e)},
            )
            await runner.cleanup()
            raise

        self._runner = runner
        if server.port == 0 and runner.addresses:
            self._bound_port = runner.addresses[0][1]

        logger.info(f"> Ready on {self.config.protocol}://{server.host}:{self.port}")

    async def stop(self) -> None:
        """Close every live relay, then stop the listener."""
        if self._runner is None:
            return

        logger.info("Stopping relay server", extra={"active_connections": len(self._relays)})

        relays = list(self._relays)
        await asyncio.gather(
            *(relay.close("server shutting down", code=CLOSE_GOING_AWAY) for relay in relays),
            return_exceptions=True,
        )

        await self._runner.cleanup()
        self._runner = None
        self._bound_port = None

        logger.info("Relay server stopped")


async def run_server(config: RelayConfig) -> None:
    """Run the relay until cancelled.

    Raises:
        MissingCredential: If no upstream credential is configured; nothing is bound
    """
    config.require_credential()

    server = RelayServer(config)
    await server.start()

    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Server loop cancelled")
    finally:
        await server.stop()
