"""HTTP status server for gralph sessions.

Endpoints (all JSON, all behind the optional bearer token)::

    GET  /               health check
    GET  /status         every session, enriched with live data
    GET  /status/{name}  one session
    POST /stop/{name}    stop a session

Store calls block on the state lock, so they run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from aiohttp import web

from gralph.errors import GralphError, LockTimeoutError, SessionNotFoundError
from gralph.lifecycle import collect_status, get_session_status, stop_session
from gralph.store import StateStore

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
SERVICE_NAME = "gralph-server"

_LOCAL_ORIGINS = ("http://localhost", "http://127.0.0.1", "http://[::1]")
_WILDCARD_HOSTS = ("", "0.0.0.0", "::")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def resolve_cors_origin(origin: str, host: str, open_cors: bool) -> str:
    """Value for Access-Control-Allow-Origin, or "" to send none."""
    origin = origin.strip()
    if not origin:
        return ""
    if open_cors:
        return "*"
    if origin in _LOCAL_ORIGINS:
        return origin
    host = host.strip()
    if host not in _WILDCARD_HOSTS and origin == f"http://{host}":
        return origin
    return ""


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


class StatusServer:
    """aiohttp application exposing the state store over HTTP."""

    def __init__(
        self,
        store: StateStore,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        token: str = "",
        open_cors: bool = False,
    ) -> None:
        self.store = store
        self.host = host
        self.port = port
        self.token = token
        self.open_cors = open_cors
        self.app = web.Application(
            middlewares=[
                self._request_logging_middleware,
                self._cors_middleware,
                self._auth_middleware,
            ]
        )
        self._setup_routes()

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        start = time.monotonic()
        try:
            response = await handler(request)
        except Exception:
            logger.exception("HTTP %s %s failed", request.method, request.path_qs)
            raise
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "HTTP %s %s status=%s duration_ms=%.1f",
            request.method, request.path_qs, response.status, elapsed_ms,
        )
        return response

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            try:
                response = await handler(request)
            except web.HTTPMethodNotAllowed:
                response = _error(405, "Method not allowed")
            except web.HTTPNotFound:
                response = _error(404, "Unknown endpoint")
            except LockTimeoutError as exc:
                response = _error(503, str(exc))
            except GralphError as exc:
                logger.warning("HTTP %s %s failed: %s", request.method, request.path_qs, exc)
                response = _error(500, str(exc))

        allow = resolve_cors_origin(request.headers.get("Origin", ""), self.host, self.open_cors)
        if allow:
            response.headers["Access-Control-Allow-Origin"] = allow
            if allow != "*":
                response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Max-Age"] = "86400"
        return response

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        if self.token:
            parts = request.headers.get("Authorization", "").split()
            if len(parts) != 2 or parts[0].lower() != "bearer" or parts[1] != self.token:
                return _error(401, "Invalid or missing Bearer token")
        return await handler(request)

    # ── Routes ──

    def _setup_routes(self) -> None:
        r = self.app.router
        r.add_get("/", self._handle_health)
        r.add_get("/status", self._handle_list)
        r.add_get("/status/{name}", self._handle_get)
        r.add_post("/stop/{name}", self._handle_stop)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "service": SERVICE_NAME})

    async def _handle_list(self, request: web.Request) -> web.Response:
        sessions = await asyncio.to_thread(collect_status, self.store)
        return web.json_response({"sessions": sessions})

    async def _handle_get(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            session: dict[str, Any] = await asyncio.to_thread(get_session_status, self.store, name)
        except SessionNotFoundError:
            return _error(404, f"Session not found: {name}")
        return web.json_response(session)

    async def _handle_stop(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            await asyncio.to_thread(stop_session, self.store, name)
        except SessionNotFoundError:
            return _error(404, f"Session not found: {name}")
        return web.json_response({"success": True, "message": "Session stopped"})

    # ── Lifecycle ──

    async def serve(self) -> None:
        """Listen until cancelled."""
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        logger.info("gralph status server listening on http://%s:%d", self.host, self.port)
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            logger.info("Server shutting down")
        finally:
            await runner.cleanup()
