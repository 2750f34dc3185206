# backend/weaklink/routes/leaderboard_routes.py
from datetime import date, datetime, timedelta
from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from ..aggregation import StatsAggregator, day_bounds, month_start, next_month
from ..errors import AggregationConflict
from ..event_store import EventStore
from ..leaderboard import rank, rank_breaks
from ..membership import group_member_ids, is_member
from ..models.stats import DailyStat, MonthlyStat
from ..models.user import User
from ..session import Session

leaderboard_bp = Blueprint("leaderboard", __name__)

PERIODS = ("today", "week")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _aggregator() -> StatsAggregator:
    return StatsAggregator.from_config(current_app.config)


def _parse_month(value: Optional[str]) -> Optional[date]:
    """'YYYY-MM' -> first day of that month."""
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m").date()


def _with_profiles(standings, member_ids):
    users = {u.id: u for u in User.query.filter(User.id.in_(member_ids)).all()} if member_ids else {}
    payload = []
    for s in standings:
        row = s.to_dict()
        u = users.get(s.user_id)
        row["profile_name"] = u.profile_name if u else None
        row["avatar_url"] = u.avatar_url if u else None
        payload.append(row)
    return payload


def _membership_error(group_id: int, session: Session):
    if not is_member(group_id, session.user_id):
        return jsonify({"message": "not a member of this group"}), 403
    return None


# ---------------------------------------------------------------------------
# Monthly leaderboard (fewest losses first)
# ---------------------------------------------------------------------------

@leaderboard_bp.route("/<int:group_id>/leaderboard", methods=["GET"])
@jwt_required()
def monthly_leaderboard(group_id: int):
    """
    Returns:
    {
      "group_id": 1,
      "month_start": "2025-11-01",
      "leaderboard": [
        {
          "user_id": 2,
          "losses_count": 0,
          "rank": 1,
          "label": "Perfect",
          "is_weak_link": false,
          "is_current_user": true,
          "profile_name": "Alice",
          "avatar_url": null
        },
        ...
      ]
    }
    """
    session = Session.from_identity(get_jwt_identity())
    error = _membership_error(group_id, session)
    if error:
        return error

    try:
        month = _parse_month(request.args.get("month"))
    except ValueError:
        return jsonify({"message": "month must look like YYYY-MM"}), 400
    month = month or month_start(_aggregator().today())

    member_ids = group_member_ids(group_id)
    losses = {
        m.user_id: m.losses_count
        for m in MonthlyStat.query.filter_by(group_id=group_id, month_start=month).all()
    }
    entries = [{"user_id": uid, "losses_count": losses.get(uid, 0)} for uid in member_ids]
    standings = rank(entries, session=session)

    return jsonify(
        {
            "group_id": group_id,
            "month_start": month.isoformat(),
            "leaderboard": _with_profiles(standings, member_ids),
        }
    ), 200


# ---------------------------------------------------------------------------
# Raw break counts (today / last 7 days)
# ---------------------------------------------------------------------------

@leaderboard_bp.route("/<int:group_id>/breaks", methods=["GET"])
@jwt_required()
def break_board(group_id: int):
    session = Session.from_identity(get_jwt_identity())
    error = _membership_error(group_id, session)
    if error:
        return error

    period = (request.args.get("period") or "today").lower()
    if period not in PERIODS:
        return jsonify({"message": f"period must be one of {', '.join(PERIODS)}"}), 400

    aggregator = _aggregator()
    if period == "today":
        since, _ = day_bounds(aggregator.today(), aggregator.tz)
    else:
        since = datetime.utcnow() - timedelta(days=7)

    member_ids = group_member_ids(group_id)
    counts = {uid: 0 for uid in member_ids}
    for e in EventStore().query(group_id=group_id, since=since):
        if e.user_id in counts:
            counts[e.user_id] += 1

    standings = rank_breaks(counts, session=session)
    rows = _with_profiles(standings, member_ids)
    for row in rows:
        row["breaks"] = row.pop("losses_count")

    return jsonify(
        {
            "group_id": group_id,
            "period": period,
            "since": since.isoformat(),
            "leaderboard": rows,
        }
    ), 200


# ---------------------------------------------------------------------------
# Daily losers
# ---------------------------------------------------------------------------

@leaderboard_bp.route("/<int:group_id>/daily-stats", methods=["GET"])
@jwt_required()
def daily_stats(group_id: int):
    session = Session.from_identity(get_jwt_identity())
    error = _membership_error(group_id, session)
    if error:
        return error

    try:
        month = _parse_month(request.args.get("month"))
    except ValueError:
        return jsonify({"message": "month must look like YYYY-MM"}), 400
    month = month or month_start(_aggregator().today())

    rows = (
        DailyStat.query.filter(
            DailyStat.group_id == group_id,
            DailyStat.stat_date >= month,
            DailyStat.stat_date < next_month(month),
        )
        .order_by(DailyStat.stat_date.asc())
        .all()
    )
    return jsonify({"daily_stats": [r.to_dict() for r in rows]}), 200


@leaderboard_bp.route("/<int:group_id>/stats/aggregate", methods=["POST"])
@jwt_required()
def aggregate_day(group_id: int):
    """
    Recompute one day's loser and the month's loss counts. Safe to call
    repeatedly.

    Body: { "date": "2025-11-20" }   // optional, defaults to yesterday
    """
    session = Session.from_identity(get_jwt_identity())
    error = _membership_error(group_id, session)
    if error:
        return error

    aggregator = _aggregator()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    raw_date = data.get("date")
    if raw_date:
        try:
            stat_date = date.fromisoformat(raw_date)
        except (TypeError, ValueError):
            return jsonify({"message": "date must look like YYYY-MM-DD"}), 400
    else:
        stat_date = aggregator.today() - timedelta(days=1)

    try:
        row = aggregator.aggregate_day(group_id, stat_date)
    except AggregationConflict as e:
        current_app.logger.warning(f"[stats] aggregate conflict: {e}")
        return jsonify({"message": "aggregation is busy, try again"}), 409

    monthly = MonthlyStat.query.filter_by(group_id=group_id, month_start=month_start(stat_date)).all()
    return jsonify(
        {
            "stat_date": stat_date.isoformat(),
            "daily_stat": row.to_dict() if row else None,
            "monthly_stats": [m.to_dict() for m in monthly],
        }
    ), 200
