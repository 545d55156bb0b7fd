"""Local status API for the bridge daemon.

Optional: started only when an API port is configured.

Endpoints:
- ``GET /api/health``   - liveness check
- ``GET /api/status``   - daemon counters (clients, sessions, approvals, queue)
- ``GET /api/sessions`` - active sessions

Security:
- Binds to 127.0.0.1 by default (localhost only)
- Optional Bearer token authentication via api_secret
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from ..daemon import BridgeDaemon

logger = logging.getLogger(__name__)


class StatusServer:
    """Embedded read-only HTTP API over a :class:`BridgeDaemon`.

    Usage::

        api = StatusServer(daemon, port=8765)
        await api.start()
        # ... daemon runs ...
        await api.stop()
    """

    def __init__(
        self,
        daemon: BridgeDaemon,
        host: str = "127.0.0.1",
        port: int = 8765,
        api_secret: str | None = None,
    ) -> None:
        self.daemon = daemon
        self.host = host
        self.port = port
        self.api_secret = api_secret

        self.app = web.Application()
        if self.api_secret:
            self.app.middlewares.append(self._auth_middleware)
        self._setup_routes()
        self._runner: web.AppRunner | None = None

    def _setup_routes(self) -> None:
        self.app.router.add_get("/api/health", self.health)
        self.app.router.add_get("/api/status", self.status)
        self.app.router.add_get("/api/sessions", self.sessions)

    @web.middleware
    async def _auth_middleware(
        self,
        request: web.Request,
        handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    ) -> web.StreamResponse:
        """Bearer token authentication; the health route stays open."""
        if request.path == "/api/health":
            return await handler(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return web.json_response({"error": "Missing Authorization header"}, status=401)
        if auth_header[7:] != self.api_secret:
            return web.json_response({"error": "Invalid token"}, status=401)
        return await handler(request)

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Status API started: http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def health(self, request: web.Request) -> web.Response:
        """GET /api/health"""
        return web.json_response(
            {
                "status": "ok" if self.daemon.running else "stopped",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    async def status(self, request: web.Request) -> web.Response:
        """GET /api/status"""
        return web.json_response(await self.daemon.status())

    async def sessions(self, request: web.Request) -> web.Response:
        """GET /api/sessions"""
        sessions = await self.daemon.registry.list_active()
        payload = []
        for session in sessions:
            data = asdict(session)
            data["status"] = session.status.value
            data["pending_approvals"] = len(self.daemon.approvals.pending_for(session.id))
            payload.append(data)
        return web.json_response({"sessions": payload})
