"""Head advance + wall/self collision."""

from __future__ import annotations

from snake_server.game.state import Direction, GameState, Position, in_bounds, p_add

WALL = "wall"
SELF = "self"


def next_head(state: GameState, direction: Direction) -> Position:
    return p_add(state.head, direction)


def collision(state: GameState, new_head: Position, board_size: int) -> str | None:
    # Wall first, then body; the whole current snake counts (tail included).
    if not in_bounds(new_head, board_size):
        return WALL
    if state.occupies(new_head):
        return SELF
    return None


def advance(state: GameState, new_head: Position, target_length: int) -> tuple[Position, ...]:
    # Keep at most target_length segments: grows by one on the tick food was eaten.
    return (new_head,) + state.snake[: max(0, target_length - 1)]
