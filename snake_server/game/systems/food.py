"""Food placement."""

from __future__ import annotations

import random
from typing import Iterable

from snake_server.game.state import Position, random_cell


def place_food(rng: random.Random, board_size: int, occupied: Iterable[Position]) -> Position:
    """Uniform random free cell, by rejection sampling.

    Raises ValueError when every cell is occupied.
    """
    blocked = set(occupied)
    if len(blocked) >= board_size * board_size:
        raise ValueError("no free cell for food")
    while True:
        pos = random_cell(rng, board_size)
        if pos not in blocked:
            return pos
