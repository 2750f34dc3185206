# backend/weaklink/models/user.py
from datetime import datetime
from .. import db
from .types import BigIntId


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(BigIntId, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    display_name = db.Column(db.String(100))
    avatar_url = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def profile_name(self) -> str:
        return self.display_name or self.username

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
        }
