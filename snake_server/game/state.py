"""Board positions, directions and the immutable game state."""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from typing import Iterable, NamedTuple


BOARD_SIZE = 16
START_LENGTH = 4


class Position(NamedTuple):
    x: int
    y: int


Direction = tuple[int, int]

UP: Direction = (0, -1)
DOWN: Direction = (0, 1)
LEFT: Direction = (-1, 0)
RIGHT: Direction = (1, 0)

DIRECTIONS: frozenset[Direction] = frozenset({UP, DOWN, LEFT, RIGHT})

DIRECTION_BY_NAME: dict[str, Direction] = {
    "up": UP,
    "down": DOWN,
    "left": LEFT,
    "right": RIGHT,
}


def p_add(p: Position, d: Direction) -> Position:
    return Position(p[0] + d[0], p[1] + d[1])


def is_reversal(current: Direction, requested: Direction) -> bool:
    return current[0] + requested[0] == 0 and current[1] + requested[1] == 0


def in_bounds(p: Position, board_size: int = BOARD_SIZE) -> bool:
    return 0 <= p[0] < board_size and 0 <= p[1] < board_size


def board_center(board_size: int = BOARD_SIZE) -> Position:
    return Position(board_size // 2, board_size // 2)


def random_cell(rng: random.Random, board_size: int = BOARD_SIZE) -> Position:
    return Position(rng.randrange(board_size), rng.randrange(board_size))


@dataclass(frozen=True)
class GameState:
    food: Position
    snake: tuple[Position, ...]
    game_over: bool = False
    # Captured when published so observers see them with the matching board.
    score: int = 0
    direction: Direction = RIGHT

    @property
    def head(self) -> Position:
        return self.snake[0]

    def occupies(self, p: Position) -> bool:
        return p in self.snake

    def ended(self, score: int, direction: Direction) -> "GameState":
        return replace(self, game_over=True, score=score, direction=direction)


@dataclass
class Steering:
    """Direction and growth goal, guarded together by the engine lock."""

    direction: Direction = RIGHT
    target_length: int = START_LENGTH


@dataclass(frozen=True)
class LeaderboardEntry:
    username: str
    score: int

    def to_dict(self) -> dict[str, object]:
        return {"username": self.username, "score": self.score}


def positions(raw: Iterable[Iterable[int]]) -> tuple[Position, ...]:
    return tuple(Position(int(x), int(y)) for x, y in raw)

