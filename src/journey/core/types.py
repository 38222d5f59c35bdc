from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class SessionContext:
    """
    Correlation fields stamped on every event of one session.
    session_id and start_ms never change; user_id is re-pointed when a new visitor is simulated.
    """

    session_id: str
    user_id: str
    start_ms: int

    def elapsed_ms(self, now_ms: int) -> int:
        return max(0, now_ms - self.start_ms)
