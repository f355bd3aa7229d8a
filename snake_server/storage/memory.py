"""In-memory leaderboard (process lifetime only)."""

from __future__ import annotations

import logging
import threading

from snake_server.game.state import LeaderboardEntry

logger = logging.getLogger(__name__)


class LeaderboardStore:
    """Top-N scores, one entry per username holding the best score seen.

    Shared by every game session; all access goes through one lock since
    rounds may end concurrently on different sessions.
    """

    def __init__(self, capacity: int = 10):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._entries: list[LeaderboardEntry] = []
        self._lock = threading.Lock()

    def submit_score(self, username: str, score: int) -> None:
        with self._lock:
            existing = next((e for e in self._entries if e.username == username), None)
            if existing is not None:
                if score <= existing.score:
                    return
                self._entries.remove(existing)
            self._entries.append(LeaderboardEntry(username=username, score=int(score)))
            # Stable sort: equal scores keep insertion order.
            self._entries.sort(key=lambda e: e.score, reverse=True)
            if len(self._entries) > self.capacity:
                dropped = self._entries.pop()
                logger.debug("leaderboard full, dropped %s (%d)", dropped.username, dropped.score)
        logger.info("score submitted: %s=%d", username, score)

    def get_top_scores(self) -> tuple[LeaderboardEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def get_leaderboard(self, limit: int | None = None) -> list[dict[str, object]]:
        top = self.get_top_scores()
        if limit is not None:
            top = top[: int(limit)]
        return [e.to_dict() for e in top]
