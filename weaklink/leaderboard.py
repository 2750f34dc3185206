# backend/weaklink/leaderboard.py
from dataclasses import asdict, dataclass
from typing import Iterable, List, Mapping, Optional

from .session import Session

WEAK_LINK = "Weak Link"
PERFECT = "Perfect"


@dataclass(frozen=True)
class Standing:
    user_id: int
    losses_count: int
    rank: int
    label: str
    is_weak_link: bool = False
    is_current_user: bool = False

    def to_dict(self):
        return asdict(self)


def losses_label(count: int, unit: str = "loss", plural: str = "losses") -> str:
    if count == 0:
        return PERFECT
    return f"{count} {unit if count == 1 else plural}"


def _field(entry, name):
    if isinstance(entry, Mapping):
        return entry[name]
    return getattr(entry, name)


def rank(
    entries: Iterable,
    session: Optional[Session] = None,
    unit: str = "loss",
    plural: str = "losses",
) -> List[Standing]:
    """
    Fewest losses first; equal counts fall back to user_id ascending so the
    order never depends on input order. The last place is tagged as the
    weak link when there is more than one member.
    """
    rows = [(int(_field(e, "user_id")), int(_field(e, "losses_count") or 0)) for e in entries]
    rows.sort(key=lambda r: (r[1], r[0]))

    current = session.user_id if session is not None else None
    last = len(rows) - 1
    return [
        Standing(
            user_id=user_id,
            losses_count=count,
            rank=i + 1,
            label=losses_label(count, unit, plural),
            is_weak_link=(i == last and len(rows) > 1),
            is_current_user=(user_id == current),
        )
        for i, (user_id, count) in enumerate(rows)
    ]


def rank_breaks(counts: Mapping[int, int], session: Optional[Session] = None) -> List[Standing]:
    """Same ordering for raw break counts (today / this week boards)."""
    entries = [{"user_id": uid, "losses_count": n} for uid, n in counts.items()]
    return rank(entries, session=session, unit="break", plural="breaks")
