# backend/weaklink/aggregation.py
"""
Daily "weak link" and monthly loss counts, derived from the event log.

- A group's daily loser is the member with the most breaks inside the
  group's local day. Ties go to the lowest user_id. A day with no breaks
  has no loser and no row.
- A member's monthly losses_count is the number of daily_stats rows in that
  month naming them. It is always recomputed in full from daily_stats, so
  rerunning any day in any order lands on the same numbers.

Writes are upserts keyed by the table's unique constraint. When two
recomputes race, the loser of the insert race rolls back and overwrites
(last writer wins).
"""
import logging
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from zoneinfo import ZoneInfo

from . import db
from .errors import AggregationConflict
from .event_store import EventStore
from .membership import all_group_ids, group_member_ids
from .models.stats import DailyStat, MonthlyStat

logger = logging.getLogger(__name__)

UPSERT_ATTEMPTS = 2


# ------------------------------
# Pure helpers
# ------------------------------
def stats_timezone(name: Optional[str]):
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_today(tz, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def day_bounds(stat_date: date, tz) -> Tuple[datetime, datetime]:
    """[local midnight, next local midnight) as naive UTC datetimes."""
    start = datetime.combine(stat_date, time.min, tzinfo=tz)
    end = datetime.combine(stat_date + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def month_start(d: date) -> date:
    return d.replace(day=1)


def next_month(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def count_breaks(events: Iterable, member_ids: Optional[Iterable[int]] = None) -> Counter:
    allowed = set(member_ids) if member_ids is not None else None
    counts: Counter = Counter()
    for e in events:
        if allowed is not None and e.user_id not in allowed:
            continue
        counts[e.user_id] += 1
    return counts


def pick_daily_loser(counts: Mapping[int, int]) -> Optional[int]:
    candidates = {uid: n for uid, n in counts.items() if n > 0}
    if not candidates:
        return None
    return min(candidates, key=lambda uid: (-candidates[uid], uid))


def tally_losses(daily_stats: Iterable) -> Counter:
    return Counter(row.loser_user_id for row in daily_stats)


# ------------------------------
# Aggregator (writes daily_stats / monthly_stats)
# ------------------------------
class StatsAggregator:
    def __init__(
        self,
        store: Optional[EventStore] = None,
        tz="UTC",
        members: Callable[[int], List[int]] = group_member_ids,
    ):
        self.store = store or EventStore()
        self.tz = stats_timezone(tz) if isinstance(tz, str) or tz is None else tz
        self._members = members

    @classmethod
    def from_config(cls, config) -> "StatsAggregator":
        return cls(tz=config.get("STATS_TIMEZONE", "UTC"))

    def today(self, now: Optional[datetime] = None) -> date:
        return local_today(self.tz, now)

    def daily_counts(self, group_id: int, stat_date: date) -> Counter:
        since, until = day_bounds(stat_date, self.tz)
        events = self.store.query(group_id=group_id, since=since, until=until)
        return count_breaks(events, self._members(group_id))

    def aggregate_day(self, group_id: int, stat_date: date) -> Optional[DailyStat]:
        counts = self.daily_counts(group_id, stat_date)
        loser_id = pick_daily_loser(counts)
        row = self._write_daily(group_id, stat_date, loser_id)
        self.rollup_month(group_id, stat_date)
        logger.info(
            "daily stat group_id=%s date=%s loser=%s counts=%s",
            group_id, stat_date.isoformat(), loser_id, dict(counts),
        )
        return row

    def _write_daily(self, group_id: int, stat_date: date, loser_id: Optional[int]) -> Optional[DailyStat]:
        for attempt in range(1, UPSERT_ATTEMPTS + 1):
            try:
                row = DailyStat.query.filter_by(group_id=group_id, stat_date=stat_date).first()
                if loser_id is None:
                    if row is not None:
                        db.session.delete(row)
                    db.session.commit()
                    return None
                if row is None:
                    row = DailyStat(group_id=group_id, stat_date=stat_date, loser_user_id=loser_id)
                    db.session.add(row)
                else:
                    row.loser_user_id = loser_id
                db.session.commit()
                return row
            except IntegrityError:
                db.session.rollback()
                logger.info(
                    "daily stat conflict group_id=%s date=%s attempt %d, overwriting",
                    group_id, stat_date.isoformat(), attempt,
                )
        raise AggregationConflict(f"daily_stats group_id={group_id} date={stat_date.isoformat()}")

    def rollup_month(self, group_id: int, any_day: date) -> Dict[int, int]:
        start = month_start(any_day)
        end = next_month(start)
        daily_rows = DailyStat.query.filter(
            DailyStat.group_id == group_id,
            DailyStat.stat_date >= start,
            DailyStat.stat_date < end,
        ).all()
        tally = tally_losses(daily_rows)

        for attempt in range(1, UPSERT_ATTEMPTS + 1):
            try:
                existing = {
                    m.user_id: m
                    for m in MonthlyStat.query.filter_by(group_id=group_id, month_start=start).all()
                }
                for user_id in set(tally) | set(existing):
                    count = int(tally.get(user_id, 0))
                    row = existing.get(user_id)
                    if row is None:
                        db.session.add(
                            MonthlyStat(
                                user_id=user_id,
                                group_id=group_id,
                                month_start=start,
                                losses_count=count,
                            )
                        )
                    elif row.losses_count != count:
                        row.losses_count = count
                db.session.commit()
                return dict(tally)
            except IntegrityError:
                db.session.rollback()
                logger.info(
                    "monthly stat conflict group_id=%s month=%s attempt %d, overwriting",
                    group_id, start.isoformat(), attempt,
                )
        raise AggregationConflict(f"monthly_stats group_id={group_id} month={start.isoformat()}")

    def backfill(self, group_id: int, first_day: date, last_day: date) -> List[Optional[DailyStat]]:
        out = []
        day = first_day
        while day <= last_day:
            out.append(self.aggregate_day(group_id, day))
            day += timedelta(days=1)
        return out

    def backfill_groups(
        self, first_day: date, last_day: date, group_ids: Optional[Iterable[int]] = None
    ) -> Dict[int, int]:
        """Backfill every group; returns days written per group. Conflicting groups are skipped."""
        results: Dict[int, int] = {}
        for group_id in group_ids if group_ids is not None else all_group_ids():
            try:
                rows = self.backfill(group_id, first_day, last_day)
            except AggregationConflict as e:
                logger.warning("backfill skipped group_id=%s: %s", group_id, e)
                continue
            results[group_id] = sum(1 for r in rows if r is not None)
        logger.info(
            "backfill %s..%s groups=%d",
            first_day.isoformat(), last_day.isoformat(), len(results),
        )
        return results

    def rollover(self, as_of: Optional[date] = None, group_ids: Optional[Iterable[int]] = None) -> Dict[int, Optional[int]]:
        """Close out the day before `as_of` (local) for every group."""
        as_of = as_of or self.today()
        stat_date = as_of - timedelta(days=1)
        results: Dict[int, Optional[int]] = {}
        for group_id in group_ids if group_ids is not None else all_group_ids():
            try:
                row = self.aggregate_day(group_id, stat_date)
            except AggregationConflict as e:
                logger.warning("rollover skipped group_id=%s: %s", group_id, e)
                continue
            results[group_id] = row.loser_user_id if row is not None else None
        logger.info("rollover date=%s groups=%d", stat_date.isoformat(), len(results))
        return results
