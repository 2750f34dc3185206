# backend/weaklink/models/stats.py
from datetime import datetime
from .. import db
from .types import BigIntId


class DailyStat(db.Model):
    __tablename__ = "daily_stats"
    __table_args__ = (
        db.UniqueConstraint("group_id", "stat_date", name="uq_daily_stat_group_date"),
    )

    id = db.Column(BigIntId, primary_key=True)
    group_id = db.Column(BigIntId, db.ForeignKey("groups.id"), nullable=False)
    loser_user_id = db.Column(BigIntId, db.ForeignKey("users.id"), nullable=False)
    stat_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    loser = db.relationship("User", backref="daily_losses")

    def to_dict(self):
        return {
            "group_id": self.group_id,
            "loser_user_id": self.loser_user_id,
            "stat_date": self.stat_date.isoformat(),
        }


class MonthlyStat(db.Model):
    __tablename__ = "monthly_stats"
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "group_id", "month_start", name="uq_monthly_stat_user_group_month"
        ),
    )

    id = db.Column(BigIntId, primary_key=True)
    user_id = db.Column(BigIntId, db.ForeignKey("users.id"), nullable=False)
    group_id = db.Column(BigIntId, db.ForeignKey("groups.id"), nullable=False)
    month_start = db.Column(db.Date, nullable=False)
    losses_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    user = db.relationship("User", backref="monthly_stats")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "group_id": self.group_id,
            "month_start": self.month_start.isoformat(),
            "losses_count": int(self.losses_count or 0),
        }
