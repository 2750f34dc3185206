# backend/weaklink/routes/group_routes.py
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from sqlalchemy.exc import SQLAlchemyError

from .. import db
from ..membership import is_member
from ..models.group import Group, TrackedApp
from ..watchlist import lookup_app_name, sql_tracked_app_source

groups_bp = Blueprint("groups", __name__)

PLATFORMS = ("ios", "android")


def _safe_str(v) -> str:
    if not isinstance(v, str):
        return ""
    return v.strip()


@groups_bp.route("/<int:group_id>/tracked-apps", methods=["GET"])
@jwt_required()
def get_tracked_apps(group_id: int):
    """
    Returns:
    {
      "tracked_apps": [
        {
          "id": 1,
          "group_id": 1,
          "app_identifier": "com.instagram.android",
          "app_name": "Instagram",
          "platform": "android",
          "created_at": "2025-11-21T10:05:00"
        },
        ...
      ]
    }
    """
    user_id = int(get_jwt_identity())
    if not is_member(group_id, user_id):
        return jsonify({"message": "not a member of this group"}), 403

    apps = sql_tracked_app_source(group_id)
    return jsonify({"tracked_apps": [a.to_dict() for a in apps]}), 200


@groups_bp.route("/<int:group_id>/tracked-apps", methods=["POST"])
@jwt_required()
def add_tracked_apps(group_id: int):
    """
    App selection during group setup (owner only). No update path:
    identifiers already tracked are skipped.

    Body:
    {
      "apps": [
        {"app_identifier": "com.instagram.android", "app_name": "Instagram", "platform": "android"}
      ]
    }
    """
    user_id = int(get_jwt_identity())
    group = db.session.get(Group, group_id)
    if not group:
        return jsonify({"message": "group not found"}), 404

    if group.created_by != user_id:
        return jsonify({"message": "only the group owner can choose tracked apps"}), 403

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    apps = data.get("apps") or []
    if not isinstance(apps, list) or not apps:
        return jsonify({"message": "apps must be a non-empty list"}), 400

    existing = {
        a.app_identifier
        for a in TrackedApp.query.filter_by(group_id=group_id).all()
    }

    added = []
    for item in apps:
        if not isinstance(item, dict):
            return jsonify({"message": "each app must be an object"}), 400
        identifier = _safe_str(item.get("app_identifier"))
        raw_platform = item.get("platform")
        platform = "android" if raw_platform in (None, "") else _safe_str(raw_platform).lower()
        if not identifier:
            return jsonify({"message": "app_identifier is required"}), 400
        if platform not in PLATFORMS:
            return jsonify({"message": f"platform must be one of {', '.join(PLATFORMS)}"}), 400
        if identifier in existing:
            continue

        tracked = TrackedApp(
            group_id=group_id,
            app_identifier=identifier,
            app_name=_safe_str(item.get("app_name")) or lookup_app_name(identifier),
            platform=platform,
        )
        db.session.add(tracked)
        existing.add(identifier)
        added.append(tracked)

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception(f"[groups] tracked apps insert failed: {e}")
        return jsonify({"message": "Failed to save tracked apps"}), 500

    return jsonify({"added": [a.to_dict() for a in added]}), 201
