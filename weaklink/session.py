# backend/weaklink/session.py
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Session:
    """
    Who is acting. Passed explicitly to the watcher, the event store and
    the leaderboard instead of living in module-level auth state.
    """
    user_id: int
    token: Optional[str] = None

    @classmethod
    def from_identity(cls, identity) -> "Session":
        return cls(user_id=int(identity))
