"""HTTP and websocket surface of the relay."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from aiohttp import web

from livetrafik.downstream import WebSocketBroadcaster
from livetrafik.ingestion.normalize import now_ms
from livetrafik.monitoring import RelayStatus
from livetrafik.state.store import VehicleStateCache

CACHE_KEY = web.AppKey("cache", VehicleStateCache)
STATUS_KEY = web.AppKey("status", RelayStatus)
BROADCASTER_KEY = web.AppKey("broadcaster", WebSocketBroadcaster)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    response = await handler(request)
    if request.path.startswith("/api/"):
        response.headers["Access-Control-Allow-Origin"] = "*"
    return response


async def latest_vehicles(request: web.Request) -> web.Response:
    """Cached bus and train vehicles for one region."""
    cache = request.app[CACHE_KEY]
    snapshot = cache.get_snapshot(request.match_info["region"])
    return web.json_response(snapshot.as_dict())


async def health(request: web.Request) -> web.Response:
    status = request.app[STATUS_KEY]
    return web.json_response(
        {
            "status": "ok",
            "timestamp": now_ms(),
            "supabase_connected": status.is_connected,
            "messages_relayed": status.relayed_message_count,
        }
    )


async def downstream_ws(request: web.Request) -> web.StreamResponse:
    return await request.app[BROADCASTER_KEY].handle(request)


def build_app(
    *,
    cache: VehicleStateCache,
    status: RelayStatus,
    broadcaster: WebSocketBroadcaster,
) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[CACHE_KEY] = cache
    app[STATUS_KEY] = status
    app[BROADCASTER_KEY] = broadcaster
    app.router.add_get("/api/latest/{region}", latest_vehicles)
    app.router.add_get("/api/health", health)
    app.router.add_get("/ws", downstream_ws)
    return app
