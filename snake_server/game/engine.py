"""Per-session snake simulation (server authoritative).

The engine owns one board. A background task advances it every tick while
commands (`change_direction`, `reset`) arrive from the connection handler at
any time. A single lock orders every mutation: the steering aggregate
(direction + target length) and the replacement of the published state.
Observers never lock; they read the current `GameState` reference from
`engine.state` or subscribe to it.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time

from snake_server.game.config import ServerConfig
from snake_server.game.observable import StateCell
from snake_server.game.state import (
    DIRECTIONS,
    RIGHT,
    Direction,
    GameState,
    Steering,
    board_center,
    is_reversal,
)
from snake_server.game.systems.food import place_food
from snake_server.game.systems.movement import advance, collision, next_head
from snake_server.game.systems.scoring import round_score, submit_round

logger = logging.getLogger(__name__)

# Ticks the loop may fall behind before it stops catching up.
MAX_LAG_TICKS = 4


class SnakeEngine:
    def __init__(
        self,
        username: str,
        leaderboard,
        config: ServerConfig | None = None,
        rng: random.Random | None = None,
        session_id: str | None = None,
    ):
        if not isinstance(username, str) or not username.strip():
            raise ValueError("username required")
        self.username = username
        self.leaderboard = leaderboard
        self.config = config or ServerConfig()
        self.rng = rng or random.Random()
        self.session_id = session_id

        self.board_size = self.config.board_size
        self.start_length = self.config.start_length

        self._lock = threading.Lock()
        self._steering = Steering(direction=RIGHT, target_length=self.start_length)
        self.state: StateCell[GameState] = StateCell(self._fresh_state())

        self.ticks = 0
        self._task: asyncio.Task | None = None

    # -- read side --

    def snapshot(self) -> GameState:
        return self.state.get()

    @property
    def direction(self) -> Direction:
        with self._lock:
            return self._steering.direction

    @property
    def target_length(self) -> int:
        with self._lock:
            return self._steering.target_length

    @property
    def score(self) -> int:
        return round_score(self.target_length, self.start_length)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- commands --

    def change_direction(self, requested: Direction) -> None:
        try:
            known = requested in DIRECTIONS
        except TypeError:
            known = False
        if not known:
            logger.debug("ignoring invalid direction %r for %s", requested, self.username)
            return
        # Equal to a unit vector; store it as plain ints.
        requested = (int(requested[0]), int(requested[1]))
        with self._lock:
            if is_reversal(self._steering.direction, requested):
                logger.debug("ignoring reversal %s for %s", requested, self.username)
                return
            self._steering.direction = requested

    def reset(self) -> None:
        with self._lock:
            self._steering = Steering(direction=RIGHT, target_length=self.start_length)
            self.state.publish(self._fresh_state())
        logger.info("session reset for %s", self.username)

    def _fresh_state(self) -> GameState:
        center = board_center(self.board_size)
        snake = (center,)
        return GameState(
            food=place_food(self.rng, self.board_size, snake),
            snake=snake,
            game_over=False,
            score=0,
            direction=RIGHT,
        )

    # -- simulation --

    def step(self) -> GameState:
        """Advance one tick and publish the result."""
        with self._lock:
            self.ticks += 1
            cur = self.state.get()
            if cur.game_over:
                return cur

            steering = self._steering
            new_head = next_head(cur, steering.direction)

            hit = collision(cur, new_head, self.board_size)
            if hit is not None:
                return self._end_round(cur, steering, hit)

            food = cur.food
            if new_head == food:
                steering.target_length += 1
                try:
                    food = place_food(self.rng, self.board_size, cur.snake + (new_head,))
                except ValueError:
                    # Board filled: nothing left to eat.
                    grown = GameState(food=cur.food, snake=advance(cur, new_head, steering.target_length))
                    return self._end_round(grown, steering, "board_full")

            nxt = GameState(
                food=food,
                snake=advance(cur, new_head, steering.target_length),
                game_over=False,
                score=round_score(steering.target_length, self.start_length),
                direction=steering.direction,
            )
            self.state.publish(nxt)
            return nxt

    def _end_round(self, cur: GameState, steering: Steering, reason: str) -> GameState:
        # Caller holds the lock. Score goes in before the terminal state is visible.
        score = submit_round(self.leaderboard, self.username, steering.target_length, reason, self.start_length)
        ended = cur.ended(score, steering.direction)
        self.state.publish(ended)
        return ended

    # -- lifecycle --

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._tick_loop())
        logger.info("session started for %s (session=%s)", self.username, self.session_id)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("session stopped for %s (session=%s)", self.username, self.session_id)

    async def _tick_loop(self) -> None:
        period = self.config.tick_sec
        next_at = time.perf_counter() + period
        while True:
            await asyncio.sleep(max(0.0, next_at - time.perf_counter()))
            try:
                self.step()
            except Exception:
                logger.exception("tick failed for %s", self.username)

            next_at += period
            # Prevent a burst of catch-up ticks after a stall.
            now = time.perf_counter()
            if now - next_at > period * MAX_LAG_TICKS:
                next_at = now + period
