"""WebSocket handlers."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass

from aiohttp import WSMsgType, web

from snake_server.game import protocol
from snake_server.game.engine import SnakeEngine
from snake_server.net.snapshots import SnapshotCache

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    conn_id: str
    ws: web.WebSocketResponse
    created_at: float

    username: str | None = None
    session_id: str | None = None
    engine: SnakeEngine | None = None
    pump: asyncio.Task | None = None


class WsHub:
    def __init__(self, svc):
        self.svc = svc
        self._conns: dict[str, Connection] = {}
        self._snapshot_cache = SnapshotCache()

    def _origin_allowed(self, origin: str | None) -> bool:
        cfg = self.svc.config
        if cfg.cors_allow_all:
            return True
        if not origin:
            return False
        return origin in cfg.cors_allowed_origins

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    async def handle(self, request: web.Request) -> web.StreamResponse:
        if not self._origin_allowed(request.headers.get("Origin")):
            raise web.HTTPForbidden(text="origin not allowed")

        ws = web.WebSocketResponse(heartbeat=10.0, max_msg_size=64_000)
        await ws.prepare(request)

        conn = Connection(conn_id=uuid.uuid4().hex, ws=ws, created_at=time.time())
        self._conns[conn.conn_id] = conn
        logger.info("ws connected conn=%s", conn.conn_id)

        await ws.send_str(protocol.dumps("info", {"server": self.svc.version_payload()}))

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._on_text(conn, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("ws error conn=%s: %s", conn.conn_id, ws.exception())
                    break
        finally:
            await self._disconnect(conn)
        return ws

    async def _send_error(self, conn: Connection, message: str) -> None:
        await conn.ws.send_str(protocol.dumps("error", {"message": message}))

    async def _on_text(self, conn: Connection, text: str) -> None:
        try:
            msg_type, data = protocol.loads(text)
            if msg_type not in protocol.VALID_C2S:
                raise protocol.ProtocolError("invalid type")
            await self._dispatch(conn, msg_type, data)
        except protocol.ProtocolError as e:
            logger.debug("protocol error conn=%s: %s", conn.conn_id, e)
            await self._send_error(conn, str(e))

    async def _dispatch(self, conn: Connection, msg_type: str, data: dict) -> None:
        if msg_type == "hello":
            h = protocol.Hello.parse(data)
            logger.debug("hello conn=%s client=%s", conn.conn_id, h.clientVersion)
            await conn.ws.send_str(protocol.dumps("version", {"ok": True, **self.svc.version_payload()}))
            return

        if msg_type == "ping":
            p = protocol.Ping.parse(data)
            await conn.ws.send_str(protocol.dumps("pong", {"t": p.t, "serverTime": time.time()}))
            return

        if msg_type == "leave":
            await self._disconnect(conn)
            return

        if msg_type == "join":
            await self._join(conn, protocol.Join.parse(data, max_len=self.svc.config.max_username_len))
            return

        # Must be joined for game commands.
        engine = conn.engine
        if engine is None:
            await self._send_error(conn, "not joined")
            return

        if msg_type == "direction":
            engine.change_direction(protocol.ChangeDirection.parse(data).direction)
            return

        if msg_type == "reset":
            engine.reset()
            return

    async def _join(self, conn: Connection, j: protocol.Join) -> None:
        if conn.engine is not None:
            await self._send_error(conn, "already joined")
            return
        try:
            engine = self.svc.create_session(j.username)
        except web.HTTPTooManyRequests:
            await self._send_error(conn, "server at session capacity")
            return

        conn.username = j.username
        conn.session_id = engine.session_id
        conn.engine = engine
        self._snapshot_cache.clear(engine.session_id)

        await conn.ws.send_str(
            protocol.dumps(
                "welcome",
                {
                    "sessionId": engine.session_id,
                    "username": j.username,
                    "boardSize": engine.board_size,
                    "tickMs": self.svc.config.tick_ms,
                },
            )
        )
        conn.pump = asyncio.create_task(self._pump(conn, engine))
        engine.start()

    async def _pump(self, conn: Connection, engine: SnakeEngine) -> None:
        async for state in engine.state.subscribe():
            payload = self._snapshot_cache.make(
                session_id=engine.session_id,
                state=state,
                leaderboard=self.svc.leaderboard,
            )
            if payload is None:
                continue
            if conn.ws.closed:
                return
            await conn.ws.send_str(protocol.dumps("state", payload))

    async def _disconnect(self, conn: Connection) -> None:
        # Idempotent.
        if conn.conn_id not in self._conns:
            return
        self._conns.pop(conn.conn_id, None)
        if conn.pump:
            conn.pump.cancel()
            try:
                await conn.pump
            except asyncio.CancelledError:
                pass
            except ConnectionResetError:
                logger.debug("pump for conn=%s ended on closed transport", conn.conn_id)
        if conn.session_id:
            await self.svc.close_session(conn.session_id)
            self._snapshot_cache.clear(conn.session_id)
        logger.info("ws disconnected conn=%s user=%s", conn.conn_id, conn.username)
        await conn.ws.close()

    async def close_all(self) -> None:
        for c in list(self._conns.values()):
            await self._disconnect(c)
