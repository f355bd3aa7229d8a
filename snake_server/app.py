"""HTTP + WebSocket entrypoint (server authoritative).

Each WebSocket connection that joins gets its own snake session. This server
does NOT render the board; clients draw from the pushed state.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from aiohttp import web

from snake_server.game.config import ServerConfig
from snake_server.game.engine import SnakeEngine
from snake_server.logging_setup import setup_logging
from snake_server.net.snapshots import state_payload
from snake_server.net.ws import WsHub
from snake_server.storage.memory import LeaderboardStore

logger = logging.getLogger(__name__)


class GameService:
    def __init__(self, config: ServerConfig):
        self.config = config
        self.server_id = str(uuid.uuid4())
        self.start_time = time.time()

        self.leaderboard = LeaderboardStore(capacity=config.leaderboard_size)

        self.hub = WsHub(self)
        self.sessions: dict[str, SnakeEngine] = {}

    def create_session(self, username: str) -> SnakeEngine:
        if len(self.sessions) >= self.config.max_sessions:
            raise web.HTTPTooManyRequests(text="server at session capacity")
        session_id = uuid.uuid4().hex[:12]
        engine = SnakeEngine(
            username=username,
            leaderboard=self.leaderboard,
            config=self.config,
            session_id=session_id,
        )
        self.sessions[session_id] = engine
        return engine

    def get_session(self, session_id: str) -> SnakeEngine:
        engine = self.sessions.get(session_id)
        if engine is None:
            raise web.HTTPNotFound(text="unknown session")
        return engine

    async def close_session(self, session_id: str) -> None:
        engine = self.sessions.pop(session_id, None)
        if engine:
            await engine.stop()

    async def start(self) -> None:
        logger.info("snake server %s starting (board=%d, tick=%dms)", self.server_id, self.config.board_size, self.config.tick_ms)

    async def stop(self) -> None:
        await self.hub.close_all()
        for session_id in list(self.sessions):
            await self.close_session(session_id)

    def session_info(self, engine: SnakeEngine) -> dict[str, Any]:
        state = engine.snapshot()
        return {
            "sessionId": engine.session_id,
            "username": engine.username,
            "length": len(state.snake),
            "score": state.score,
            "gameOver": state.game_over,
        }

    def version_payload(self) -> dict[str, Any]:
        return {
            "serverId": self.server_id,
            "serverVersion": self.config.server_version,
            "protocolVersion": self.config.protocol_version,
            "boardSize": self.config.board_size,
            "tickMs": self.config.tick_ms,
        }


def _cors_headers(config: ServerConfig, origin: str | None) -> dict[str, str]:
    if not origin:
        return {}
    if config.cors_allow_all:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    if origin in config.cors_allowed_origins:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    return {}


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        origin = request.headers.get("Origin")
        headers = {
            **_cors_headers(request.app["config"], origin),
            "Access-Control-Allow-Methods": "GET,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
            "Access-Control-Max-Age": "86400",
        }
        return web.Response(status=204, headers=headers)

    resp = await handler(request)

    # aiohttp finalizes WS headers during `prepare()`; leave them alone.
    if isinstance(resp, web.WebSocketResponse):
        return resp

    origin = request.headers.get("Origin")
    resp.headers.update(_cors_headers(request.app["config"], origin))
    return resp


def create_app(config: ServerConfig) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    svc = GameService(config)

    app["config"] = config
    app["svc"] = svc

    async def on_startup(_: web.Application):
        await svc.start()

    async def on_cleanup(_: web.Application):
        await svc.stop()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    async def health(_: web.Request):
        return web.json_response(
            {
                "ok": True,
                "uptimeSec": time.time() - svc.start_time,
                "sessions": len(svc.sessions),
                "connections": svc.hub.connection_count,
                **svc.version_payload(),
            }
        )

    async def root(_: web.Request):
        return web.json_response(
            {
                "ok": True,
                "service": "snake-server",
                **svc.version_payload(),
                "endpoints": {
                    "health": "/health",
                    "version": "/version",
                    "sessions": "/sessions",
                    "leaderboard": "/leaderboard",
                    "ws": "/ws",
                },
            }
        )

    async def version(_: web.Request):
        return web.json_response(svc.version_payload())

    async def sessions(_: web.Request):
        return web.json_response({"sessions": [svc.session_info(e) for e in svc.sessions.values()]})

    async def session_state(request: web.Request):
        engine = svc.get_session(request.match_info["session_id"])
        return web.json_response(
            {
                **svc.session_info(engine),
                **state_payload(engine.snapshot()),
            }
        )

    async def leaderboard(_: web.Request):
        return web.json_response({"leaderboard": svc.leaderboard.get_leaderboard()})

    async def ws_handler(request: web.Request):
        return await svc.hub.handle(request)

    async def preflight(_: web.Request):
        return web.Response(status=204)

    app.router.add_get("/", root)
    app.router.add_get("/health", health)
    app.router.add_get("/version", version)
    app.router.add_get("/sessions", sessions)
    app.router.add_get("/sessions/{session_id}", session_state)
    app.router.add_get("/leaderboard", leaderboard)
    app.router.add_get("/ws", ws_handler)
    app.router.add_route("OPTIONS", "/{tail:.*}", preflight)

    return app


def main() -> None:
    config = ServerConfig.from_env()
    setup_logging(config.log_level)
    app = create_app(config)
    web.run_app(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
