# backend/weaklink/models/event.py
from datetime import datetime
from .. import db
from .types import BigIntId


class BreakEvent(db.Model):
    """
    One row per qualifying open of a tracked app. Append-only.

    `timestamp` is stamped by the server on ingest (UTC) and is the only
    value aggregation looks at. `client_timestamp` is whatever the device
    clock said and is kept for diagnostics.
    """
    __tablename__ = "events"

    id = db.Column(BigIntId, primary_key=True)
    user_id = db.Column(BigIntId, db.ForeignKey("users.id"), nullable=False)
    group_id = db.Column(BigIntId, db.ForeignKey("groups.id"), nullable=False)
    app_identifier = db.Column(db.String(255), nullable=False)
    app_name = db.Column(db.String(100), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    client_timestamp = db.Column(db.DateTime)

    user = db.relationship("User", backref="break_events")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "group_id": self.group_id,
            "app_identifier": self.app_identifier,
            "app_name": self.app_name,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "client_timestamp": self.client_timestamp.isoformat()
            if self.client_timestamp
            else None,
        }
