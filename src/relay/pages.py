"""Page collaborator for non-relay HTTP requests.

The browser UI is built and served separately; the relay only hands such
requests on. By default they are answered from an optional static
directory.
"""

import logging
from pathlib import Path

from aiohttp import web

logger = logging.getLogger(__name__)


class PageRenderer:
    """Serves files from ``static_dir``; 404 for everything else."""

    def __init__(self, static_dir: Path | None = None) -> None:
        self.static_dir = static_dir.resolve() if static_dir is not None else None

    async def render(self, request: web.Request) -> web.StreamResponse:
        if self.static_dir is None:
            raise web.HTTPNotFound()

        target = (self.static_dir / request.path.lstrip("/")).resolve()
        if not target.is_relative_to(self.static_dir):
            logger.warning("Rejected path outside static root", extra={"path": request.path})
            raise web.HTTPNotFound()

        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            raise web.HTTPNotFound()

        return web.FileResponse(target)
