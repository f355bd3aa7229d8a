"""Round-end score submission."""

from __future__ import annotations

import logging

from snake_server.game.state import START_LENGTH

logger = logging.getLogger(__name__)


def round_score(target_length: int, start_length: int = START_LENGTH) -> int:
    return max(0, target_length - start_length)


def submit_round(leaderboard, username: str, target_length: int, reason: str, start_length: int = START_LENGTH) -> int:
    score = round_score(target_length, start_length)
    logger.info("round over for %s (%s), score=%d", username, reason, score)
    leaderboard.submit_score(username, score)
    return score
