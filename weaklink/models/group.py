# backend/weaklink/models/group.py
from datetime import datetime
from .. import db
from .types import BigIntId


# -----------------------------
# Groups & membership (owned by the group service, read here)
# -----------------------------
class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(BigIntId, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    invite_code = db.Column(db.String(20), unique=True)
    created_by = db.Column(BigIntId, db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    creator = db.relationship("User", backref="created_groups")
    members = db.relationship(
        "GroupMember", back_populates="group", cascade="all, delete-orphan"
    )
    tracked_apps = db.relationship(
        "TrackedApp",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="TrackedApp.id",
    )


class GroupMember(db.Model):
    __tablename__ = "group_members"

    user_id = db.Column(BigIntId, db.ForeignKey("users.id"), primary_key=True)
    group_id = db.Column(BigIntId, db.ForeignKey("groups.id"), primary_key=True)
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship("User", backref="memberships")
    group = db.relationship("Group", back_populates="members")


# -----------------------------
# Watch-list: apps a group monitors
# -----------------------------
class TrackedApp(db.Model):
    __tablename__ = "tracked_apps"
    __table_args__ = (
        db.UniqueConstraint("group_id", "app_identifier", name="uq_tracked_app_group_identifier"),
    )

    id = db.Column(BigIntId, primary_key=True)
    group_id = db.Column(
        BigIntId, db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    app_identifier = db.Column(db.String(255), nullable=False)
    app_name = db.Column(db.String(100), nullable=False)
    platform = db.Column(
        db.Enum("ios", "android", name="tracked_app_platform"),
        nullable=False,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    group = db.relationship("Group", back_populates="tracked_apps")

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "app_identifier": self.app_identifier,
            "app_name": self.app_name,
            "platform": self.platform,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
