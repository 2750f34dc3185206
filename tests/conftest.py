"""
Pytest configuration and shared fixtures for the Weak Link tests.

- app / client: a fresh app on in-memory SQLite per test
- ctx: the same app with an application context pushed
- seed: small factory for users, groups, members, tracked apps, events, tokens
"""

from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from config import TestConfig
from weaklink import create_app, db
from weaklink.models.event import BreakEvent
from weaklink.models.group import Group, GroupMember, TrackedApp
from weaklink.models.user import User
from weaklink.notifications import RecordingNotifier

INSTAGRAM = "com.instagram.android"
TIKTOK = "com.zhiliaoapp.musically"
CHROME = "com.android.chrome"


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(TestConfig, notifier=notifier)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


class Seed:
    def __init__(self, app):
        self.app = app

    def user(self, username: str) -> int:
        with self.app.app_context():
            u = User(username=username, display_name=username.title())
            db.session.add(u)
            db.session.commit()
            return u.id

    def group(self, name: str, owner_id: int, member_ids=()) -> int:
        with self.app.app_context():
            g = Group(name=name, created_by=owner_id, invite_code=f"{name[:6].upper()}{owner_id}")
            db.session.add(g)
            db.session.flush()
            for uid in {owner_id, *member_ids}:
                db.session.add(GroupMember(user_id=uid, group_id=g.id))
            db.session.commit()
            return g.id

    def tracked(self, group_id: int, *identifiers: str) -> None:
        with self.app.app_context():
            for identifier in identifiers:
                db.session.add(
                    TrackedApp(
                        group_id=group_id,
                        app_identifier=identifier,
                        app_name=identifier.split(".")[1].title(),
                        platform="android",
                    )
                )
            db.session.commit()

    def event(self, user_id: int, group_id: int, ts: datetime, app_identifier: str = INSTAGRAM) -> int:
        with self.app.app_context():
            e = BreakEvent(
                user_id=user_id,
                group_id=group_id,
                app_identifier=app_identifier,
                app_name="Instagram",
                timestamp=ts,
            )
            db.session.add(e)
            db.session.commit()
            return e.id

    def headers(self, user_id: int) -> dict:
        with self.app.app_context():
            token = create_access_token(identity=str(user_id))
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seed(app):
    return Seed(app)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: pure logic, no database")
    config.addinivalue_line("markers", "integration: uses the app and database")
