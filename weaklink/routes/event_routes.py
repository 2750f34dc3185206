# backend/weaklink/routes/event_routes.py
from datetime import datetime, timezone
from typing import Any, Optional

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from .. import db
from ..errors import StoreWriteFailure
from ..event_store import EventStore
from ..membership import group_member_ids, is_member
from ..models.group import TrackedApp
from ..models.user import User
from ..probes import UNKNOWN_APP
from ..session import Session

events_bp = Blueprint("events", __name__)


# ------------------------------
# Helpers
# ------------------------------
def _safe_int_or_none(v: Any) -> Optional[int]:
    if v is None:
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _safe_str(v: Any) -> str:
    if not isinstance(v, str):
        return ""
    return v.strip()


def _parse_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601 string -> naive UTC. Non-strings are None; junk strings raise ValueError."""
    if not value or not isinstance(value, str):
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _notify_group(event, session: Session) -> None:
    notifier = current_app.extensions.get("weaklink.notifier")
    if notifier is None:
        return
    try:
        actor = db.session.get(User, session.user_id)
        recipients = [uid for uid in group_member_ids(event.group_id) if uid != session.user_id]
        notifier.notify_break(event, actor.profile_name if actor else None, recipients)
    except Exception:
        current_app.logger.exception(f"[events] notify failed event_id={event.id}")


# ------------------------------
# POST /api/events
# ------------------------------
@events_bp.route("", methods=["POST"])
@jwt_required()
def append_event():
    """
    Body:
    {
      "group_id": 1,
      "app_identifier": "com.instagram.android",
      "app_name": "Instagram",                 // optional, watch-list name wins
      "client_timestamp": "2025-11-21T10:05:00Z" // optional, diagnostics only
    }
    """
    session = Session.from_identity(get_jwt_identity())
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    group_id = _safe_int_or_none(data.get("group_id"))
    app_identifier = _safe_str(data.get("app_identifier"))

    if not group_id or not app_identifier:
        return jsonify({"message": "group_id and app_identifier are required"}), 400

    if app_identifier == UNKNOWN_APP:
        return jsonify({"message": "unknown app cannot be recorded"}), 400

    if not is_member(group_id, session.user_id):
        return jsonify({"message": "not a member of this group"}), 403

    tracked = TrackedApp.query.filter_by(group_id=group_id, app_identifier=app_identifier).first()
    if not tracked:
        return jsonify({"message": "app is not tracked by this group"}), 400

    try:
        client_timestamp = _parse_datetime(data.get("client_timestamp"))
    except (TypeError, ValueError):
        client_timestamp = None

    try:
        event = EventStore().append(
            session,
            group_id,
            app_identifier,
            tracked.app_name or _safe_str(data.get("app_name")) or app_identifier,
            client_timestamp=client_timestamp,
        )
    except StoreWriteFailure as e:
        current_app.logger.exception(f"[events] append failed: {e}")
        return jsonify({"message": "Failed to record event"}), 500

    _notify_group(event, session)

    return jsonify({"event": event.to_dict()}), 201


# ------------------------------
# GET /api/events?group_id=1&user_id=2&since=...&until=...
# ------------------------------
@events_bp.route("", methods=["GET"])
@jwt_required()
def list_events():
    session = Session.from_identity(get_jwt_identity())

    group_id = _safe_int_or_none(request.args.get("group_id"))
    if not group_id:
        return jsonify({"message": "group_id is required"}), 400

    if not is_member(group_id, session.user_id):
        return jsonify({"message": "not a member of this group"}), 403

    user_id = _safe_int_or_none(request.args.get("user_id"))
    try:
        since = _parse_datetime(request.args.get("since"))
        until = _parse_datetime(request.args.get("until"))
    except ValueError:
        return jsonify({"message": "since/until must be ISO-8601 datetimes"}), 400

    events = EventStore().query(group_id=group_id, user_id=user_id, since=since, until=until)
    return jsonify({"events": [e.to_dict() for e in events]}), 200
