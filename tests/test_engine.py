from __future__ import annotations

import asyncio
import random
import threading

import pytest

from snake_server.game.config import ServerConfig
from snake_server.game.engine import SnakeEngine
from snake_server.game.state import DOWN, LEFT, RIGHT, UP, GameState, Position, positions
from snake_server.storage.memory import LeaderboardStore


def _engine(seed: int = 1, **cfg) -> SnakeEngine:
    return SnakeEngine(
        username="alice",
        leaderboard=LeaderboardStore(),
        config=ServerConfig(**cfg),
        rng=random.Random(seed),
    )


def _load(engine: SnakeEngine, food: tuple[int, int], snake: list[tuple[int, int]]) -> GameState:
    state = GameState(food=Position(*food), snake=positions(snake))
    engine.state.publish(state)
    return state


def test_blank_username_rejected() -> None:
    with pytest.raises(ValueError):
        SnakeEngine(username="  ", leaderboard=LeaderboardStore())


def test_initial_state_is_fresh_round() -> None:
    engine = _engine()
    state = engine.snapshot()

    assert state.snake == (Position(8, 8),)
    assert state.game_over is False
    assert state.food not in state.snake
    assert engine.direction == RIGHT
    assert engine.target_length == 4
    assert engine.score == 0


def test_reversal_is_ignored() -> None:
    engine = _engine()
    engine.change_direction(LEFT)
    assert engine.direction == RIGHT

    engine.change_direction(UP)
    assert engine.direction == UP
    engine.change_direction(DOWN)
    assert engine.direction == UP

    engine.change_direction(UP)
    assert engine.direction == UP
    engine.change_direction(LEFT)
    assert engine.direction == LEFT


def test_non_unit_direction_is_ignored() -> None:
    engine = _engine()
    engine.change_direction((1, 1))
    engine.change_direction((0, 0))
    engine.change_direction((2, 0))
    engine.change_direction((0.6, -1.4))
    assert engine.direction == RIGHT


@pytest.mark.parametrize("bad", [None, ("x", 0), (1,), 5, [0, -1], "up"])
def test_malformed_direction_is_ignored_without_error(bad) -> None:
    engine = _engine()
    engine.change_direction(bad)
    assert engine.direction == RIGHT


def test_float_unit_direction_is_stored_as_ints() -> None:
    engine = _engine()
    engine.change_direction((0.0, -1.0))
    assert engine.direction == UP
    assert all(type(v) is int for v in engine.direction)


def test_eating_food_grows_and_relocates_food() -> None:
    engine = _engine()
    _load(engine, food=(8, 7), snake=[(7, 7)])

    state = engine.step()

    assert state.snake == positions([(8, 7), (7, 7)])
    assert engine.target_length == 5
    assert state.food not in {Position(8, 7), Position(7, 7)}
    assert state.game_over is False
    assert engine.snapshot() is state


def test_snake_grows_to_target_then_keeps_length() -> None:
    engine = _engine()
    _load(engine, food=(0, 0), snake=[(8, 8)])

    lengths = [len(engine.step().snake) for _ in range(5)]

    assert lengths == [2, 3, 4, 4, 4]
    assert engine.snapshot().snake == positions([(13, 8), (12, 8), (11, 8), (10, 8)])


def test_growth_applies_one_extra_segment() -> None:
    engine = _engine()
    _load(engine, food=(0, 0), snake=[(4, 8), (3, 8), (2, 8), (1, 8)])
    engine.step()
    assert len(engine.snapshot().snake) == 4

    cur = engine.snapshot()
    engine.state.publish(GameState(food=Position(6, 8), snake=cur.snake))
    engine.step()
    assert len(engine.snapshot().snake) == 5
    assert engine.target_length == 5

    engine.state.publish(GameState(food=Position(0, 0), snake=engine.snapshot().snake))
    engine.change_direction(UP)
    engine.step()
    assert len(engine.snapshot().snake) == 5


def test_wall_hit_ends_round_and_submits_score() -> None:
    engine = _engine()
    before = _load(engine, food=(5, 5), snake=[(0, 0)])
    engine.change_direction(UP)
    engine.change_direction(LEFT)

    state = engine.step()

    assert state.game_over is True
    assert state.snake == before.snake
    assert state.food == before.food
    assert engine.leaderboard.get_leaderboard() == [{"username": "alice", "score": 0}]


def test_self_hit_ends_round_without_moving_head() -> None:
    engine = _engine()
    before = _load(engine, food=(0, 0), snake=[(5, 5), (5, 6), (6, 6), (6, 5)])

    # (6, 5) is the tail; it still counts as body on this tick.
    state = engine.step()

    assert state.game_over is True
    assert state.snake == before.snake
    assert state.food == before.food


def test_score_is_target_length_minus_start() -> None:
    engine = _engine()
    _load(engine, food=(9, 8), snake=[(8, 8)])
    engine.step()
    cur = engine.snapshot()
    engine.state.publish(GameState(food=Position(10, 8), snake=cur.snake))
    engine.step()
    assert engine.score == 2

    engine.state.publish(GameState(food=Position(0, 15), snake=engine.snapshot().snake))
    engine.change_direction(UP)
    for _ in range(20):
        engine.step()

    assert engine.snapshot().game_over is True
    assert engine.leaderboard.get_leaderboard() == [{"username": "alice", "score": 2}]


def test_game_over_state_is_frozen() -> None:
    engine = _engine()
    _load(engine, food=(5, 5), snake=[(15, 3)])
    ended = engine.step()
    assert ended.game_over is True
    version = engine.state.version

    engine.change_direction(UP)
    for _ in range(3):
        assert engine.step() is ended

    assert engine.state.version == version
    # Submitted once per round end.
    assert len(engine.leaderboard.get_top_scores()) == 1


def test_reset_from_game_over() -> None:
    engine = _engine(board_size=16)
    _load(engine, food=(5, 5), snake=[(15, 3)])
    engine.step()
    assert engine.snapshot().game_over is True

    engine.reset()
    state = engine.snapshot()

    assert state.game_over is False
    assert state.snake == (Position(8, 8),)
    assert state.food != Position(8, 8)
    assert engine.target_length == 4
    assert engine.direction == RIGHT


def test_reset_mid_round_restores_length_goal() -> None:
    engine = _engine()
    _load(engine, food=(9, 8), snake=[(8, 8)])
    engine.step()
    assert engine.target_length == 5

    engine.reset()
    assert engine.target_length == 4
    assert engine.snapshot().snake == (Position(8, 8),)


def test_board_full_ends_round() -> None:
    engine = _engine(board_size=4)
    # Every cell but (3, 3) taken; food there, snake head next to it.
    cells = [(x, 0) for x in range(3, -1, -1)]
    cells += [(x, 1) for x in range(4)]
    cells += [(x, 2) for x in range(3, -1, -1)]
    cells += [(x, 3) for x in range(3)]
    snake = list(reversed(cells))
    engine._steering.target_length = len(snake)
    _load(engine, food=(3, 3), snake=snake)

    state = engine.step()

    assert state.game_over is True
    assert len(state.snake) == 16
    assert engine.leaderboard.get_leaderboard()[0]["score"] == 12


def test_invariants_hold_over_random_play() -> None:
    engine = _engine(seed=7)
    chooser = random.Random(42)
    rounds = 0
    for _ in range(3000):
        if chooser.random() < 0.3:
            engine.change_direction(chooser.choice([UP, DOWN, LEFT, RIGHT]))
        state = engine.step()
        if state.game_over:
            rounds += 1
            engine.reset()
            continue
        assert len(set(state.snake)) == len(state.snake)
        assert all(0 <= p.x < 16 and 0 <= p.y < 16 for p in state.snake)
        assert state.food not in state.snake

    assert rounds > 0


def test_commands_from_other_threads_keep_state_consistent() -> None:
    engine = _engine(seed=3)
    stop = threading.Event()
    errors: list[BaseException] = []

    def spam() -> None:
        r = random.Random(threading.get_ident())
        try:
            while not stop.is_set():
                if r.random() < 0.05:
                    engine.reset()
                else:
                    engine.change_direction(r.choice([UP, DOWN, LEFT, RIGHT]))
        except BaseException as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=spam) for _ in range(4)]
    for t in threads:
        t.start()
    try:
        for _ in range(2000):
            state = engine.step()
            if state.game_over:
                engine.reset()
                continue
            assert len(set(state.snake)) == len(state.snake)
            assert state.food not in state.snake
            assert engine.direction in {UP, DOWN, LEFT, RIGHT}
    finally:
        stop.set()
        for t in threads:
            t.join()

    assert errors == []


@pytest.mark.asyncio
async def test_tick_loop_publishes_until_stopped() -> None:
    engine = _engine(tick_ms=10)
    _load(engine, food=(0, 0), snake=[(2, 2)])
    engine.change_direction(DOWN)
    seen: list[GameState] = []

    async def watch() -> None:
        async for state in engine.state.subscribe():
            seen.append(state)
            if len(seen) >= 4:
                return

    engine.start()
    assert engine.running is True
    try:
        await asyncio.wait_for(watch(), timeout=2.0)
    finally:
        await engine.stop()

    assert engine.running is False
    assert seen[0].snake == (Position(2, 2),)
    heads = [s.head for s in seen[1:]]
    assert heads[0].y > 2
    assert all(h.x == 2 for h in heads)
    ticks = engine.ticks
    await asyncio.sleep(0.05)
    assert engine.ticks == ticks


@pytest.mark.asyncio
async def test_tick_loop_survives_step_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = _engine(tick_ms=5)
    calls = {"n": 0}
    real_step = engine.step

    def flaky_step() -> GameState:
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("boom")
        return real_step()

    monkeypatch.setattr(engine, "step", flaky_step)
    engine.start()
    try:
        for _ in range(100):
            if calls["n"] >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await engine.stop()

    assert calls["n"] >= 3
