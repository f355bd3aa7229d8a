"""State payloads + per-connection de-duplication."""

from __future__ import annotations

from typing import Any

from snake_server.game.state import GameState


def state_payload(state: GameState) -> dict[str, Any]:
    return {
        "food": [state.food.x, state.food.y],
        "snake": [[p.x, p.y] for p in state.snake],
        "gameOver": state.game_over,
    }


class SnapshotCache:
    def __init__(self):
        # Published states are immutable, so identity means "already sent".
        self._last_by_session: dict[str, GameState] = {}

    def clear(self, session_id: str) -> None:
        self._last_by_session.pop(session_id, None)

    def make(self, session_id: str, state: GameState, leaderboard=None) -> dict[str, Any] | None:
        """Payload for `state`, or None if this exact state was already sent."""
        if self._last_by_session.get(session_id) is state:
            return None
        self._last_by_session[session_id] = state

        out = {
            "sessionId": session_id,
            **state_payload(state),
            "score": state.score,
            "direction": list(state.direction),
        }
        if state.game_over and leaderboard is not None:
            out["leaderboard"] = leaderboard.get_leaderboard()
        return out
