"""Tickrate, board size, caps."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class ServerConfig:
    # Versions
    server_version: str = "0.1.0"
    protocol_version: int = 1

    # Network
    host: str = "0.0.0.0"
    port: int = 8765
    cors_allow_all: bool = True
    cors_allowed_origins: list[str] = field(default_factory=list)

    # Game
    board_size: int = 16
    tick_ms: int = 150
    start_length: int = 4

    # Sessions
    max_sessions: int = 200
    max_username_len: int = 24

    # Leaderboard
    leaderboard_size: int = 10

    log_level: str = "INFO"

    @property
    def tick_sec(self) -> float:
        return self.tick_ms / 1000.0

    @staticmethod
    def _parse_bool(v: str | None, default: bool) -> bool:
        if v is None:
            return default
        return v.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int(v: str | None, default: int) -> int:
        if v is None:
            return default
        try:
            return int(v)
        except ValueError:
            return default

    @classmethod
    def from_env(cls) -> "ServerConfig":
        cfg = cls()
        cfg.host = os.environ.get("SNAKE_HOST", cfg.host)
        cfg.port = cls._parse_int(os.environ.get("SNAKE_PORT"), cfg.port)
        cfg.cors_allow_all = cls._parse_bool(os.environ.get("SNAKE_CORS_ALLOW_ALL"), cfg.cors_allow_all)
        origins = os.environ.get("SNAKE_CORS_ORIGINS")
        if origins:
            cfg.cors_allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]

        cfg.board_size = cls._parse_int(os.environ.get("SNAKE_BOARD_SIZE"), cfg.board_size)
        cfg.tick_ms = cls._parse_int(os.environ.get("SNAKE_TICK_MS"), cfg.tick_ms)
        cfg.leaderboard_size = cls._parse_int(os.environ.get("SNAKE_LEADERBOARD_SIZE"), cfg.leaderboard_size)
        cfg.max_sessions = cls._parse_int(os.environ.get("SNAKE_MAX_SESSIONS"), cfg.max_sessions)
        cfg.log_level = os.environ.get("SNAKE_LOG_LEVEL", cfg.log_level).upper()

        # Board must fit a snake of start length plus food.
        if cfg.board_size < 4:
            cfg.board_size = 4
        if cfg.tick_ms <= 0:
            cfg.tick_ms = 150
        if cfg.leaderboard_size < 1:
            cfg.leaderboard_size = 10
        if cfg.max_sessions < 1:
            cfg.max_sessions = 200
        return cfg
