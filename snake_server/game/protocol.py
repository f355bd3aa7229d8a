"""Message schemas + validation.

Wire format:
  {"type": "direction", "data": {...}}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from snake_server.game.state import DIRECTION_BY_NAME, DIRECTIONS, Direction


class ProtocolError(Exception):
    pass


def dumps(msg_type: str, data: dict[str, Any]) -> str:
    return json.dumps({"type": msg_type, "data": data}, separators=(",", ":"))


def loads(text: str) -> tuple[str, dict[str, Any]]:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"invalid json: {e}")

    if not isinstance(obj, dict):
        raise ProtocolError("message must be object")
    t = obj.get("type")
    if not isinstance(t, str):
        raise ProtocolError("missing type")
    data = obj.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProtocolError("data must be object")
    return t, data


def _num(v: Any, *, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _int(v: Any) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return None


@dataclass
class Hello:
    clientVersion: str

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "Hello":
        v = data.get("clientVersion")
        if not isinstance(v, str) or not v:
            raise ProtocolError("hello.clientVersion required")
        return cls(clientVersion=v)


@dataclass
class Join:
    username: str

    @classmethod
    def parse(cls, data: dict[str, Any], max_len: int = 24) -> "Join":
        name = data.get("username")
        if not isinstance(name, str) or not name.strip():
            raise ProtocolError("join.username required")
        return cls(username=name.strip()[:max_len])


@dataclass
class ChangeDirection:
    direction: Direction

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "ChangeDirection":
        name = data.get("dir")
        if isinstance(name, str):
            d = DIRECTION_BY_NAME.get(name.strip().lower())
            if d is None:
                raise ProtocolError(f"direction.dir unknown: {name}")
            return cls(direction=d)

        dx, dy = _int(data.get("dx")), _int(data.get("dy"))
        if dx is None or dy is None:
            raise ProtocolError("direction requires dir or integer dx/dy")
        if (dx, dy) not in DIRECTIONS:
            raise ProtocolError("direction must be a unit vector")
        return cls(direction=(dx, dy))


@dataclass
class Ping:
    t: float

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "Ping":
        return cls(t=_num(data.get("t"), default=0.0))


VALID_C2S = {"hello", "join", "direction", "reset", "ping", "leave"}
