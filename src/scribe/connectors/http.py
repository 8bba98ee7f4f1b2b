"""HTTP callable surface.

POST /callable/{name} with a JSON body {"data": {...}} returns
{"result": ...} or {"error": {"status": ..., "message": ...}}.

Identity resolution happens upstream: an authenticating proxy sets the
X-Scribe-Uid header. Requests without it are treated as unauthenticated.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from aiohttp import web

from scribe.core import CallContext
from scribe.errors import Internal, InvalidArgument, NotFound, ScribeError, Unauthenticated

if TYPE_CHECKING:
    from scribe.config import ServerConfig
    from scribe.core import Scribe

logger = logging.getLogger(__name__)

UID_HEADER = "X-Scribe-Uid"

CallableHandler = Callable[[CallContext, dict], Awaitable[dict]]


class HTTPConnector:
    """aiohttp server exposing the callable operations."""

    def __init__(self, scribe: Scribe, config: ServerConfig) -> None:
        self._scribe = scribe
        self._config = config
        self._runner: web.AppRunner | None = None
        self._callables: dict[str, CallableHandler] = {
            "enhance": lambda caller, data: scribe.enhance(caller, data.get("text")),
            "createEntry": lambda caller, data: scribe.create_entry(caller, data.get("text")),
            "editEntry": lambda caller, data: scribe.edit_entry(
                caller, data.get("receiptId"), data.get("newText")
            ),
            "deleteEntry": lambda caller, data: scribe.delete_entry(caller, data.get("receiptId")),
        }

    @property
    def name(self) -> str:
        return "http"

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/callable/{name}", self._handle_callable)
        app.router.add_get("/healthz", self._handle_health)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()
        logger.info("HTTP callables listening on %s:%d", self._config.host, self._config.port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP callables stopped")

    async def _handle_callable(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            handler = self._callables.get(name)
            if handler is None:
                raise NotFound(f"Unknown callable: {name}")
            caller = CallContext(uid=request.headers.get(UID_HEADER) or None)
            if caller.uid is None:
                raise Unauthenticated("Auth required.")
            data = await self._read_data(request)
            result = await handler(caller, data)
        except ScribeError as e:
            return self._error(e)
        except Exception:
            logger.exception("Unhandled error in callable %s", name)
            return self._error(Internal("Internal error."))
        return web.json_response({"result": result})

    @staticmethod
    async def _read_data(request: web.Request) -> dict[str, Any]:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidArgument("Request body must be JSON.")
        if not isinstance(body, dict):
            raise InvalidArgument("Request body must be an object.")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise InvalidArgument("'data' must be an object.")
        return data

    @staticmethod
    def _error(error: ScribeError) -> web.Response:
        return web.json_response({"error": error.to_dict()}, status=error.http_status)

    async def _handle_health(self, request: web.Request) -> web.Response:
        healthy = await self._scribe.backend.health_check()
        return web.json_response(
            {"status": "ok" if healthy else "degraded", "engine": self._scribe.backend.name},
            status=200 if healthy else 503,
        )
