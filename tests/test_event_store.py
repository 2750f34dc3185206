from datetime import datetime, timedelta
from itertools import count

import pytest
from sqlalchemy.exc import OperationalError

from conftest import INSTAGRAM, TIKTOK
from weaklink import db
from weaklink.app_watcher import AppWatcher, TickOutcome, WatcherSettings
from weaklink.errors import StoreWriteFailure
from weaklink.event_store import EventStore, LocalEventSink
from weaklink.session import Session
from weaklink.watchlist import WatchListResolver

pytestmark = pytest.mark.integration

T0 = datetime(2025, 11, 20, 9, 0)


def ticking_clock(start=T0, step=timedelta(minutes=1)):
    n = count()
    return lambda: start + next(n) * step


@pytest.fixture
def pair(ctx, seed):
    a = seed.user("alice")
    b = seed.user("bob")
    gid = seed.group("Study", a, member_ids=[b])
    return gid, a, b


def test_append_assigns_server_time_and_id(pair):
    gid, a, _ = pair
    store = EventStore(clock=lambda: T0)

    event = store.append(Session(user_id=a), gid, INSTAGRAM, "Instagram",
                         client_timestamp=datetime(2001, 1, 1))

    assert event.id is not None
    assert event.timestamp == T0
    assert event.client_timestamp == datetime(2001, 1, 1)
    assert event.user_id == a


def test_query_orders_by_timestamp(pair):
    gid, a, b = pair
    store = EventStore(clock=ticking_clock())
    store.append(Session(user_id=a), gid, INSTAGRAM, "Instagram")
    store.append(Session(user_id=b), gid, TIKTOK, "TikTok")
    store.append(Session(user_id=a), gid, TIKTOK, "TikTok")

    events = store.query(group_id=gid)
    assert [e.timestamp for e in events] == sorted(e.timestamp for e in events)
    assert [(e.user_id, e.app_identifier) for e in events] == [
        (a, INSTAGRAM),
        (b, TIKTOK),
        (a, TIKTOK),
    ]


def test_query_filters(pair, seed):
    gid, a, b = pair
    other = seed.group("Gym", b)
    store = EventStore(clock=ticking_clock())
    for uid, g in ((a, gid), (b, gid), (a, gid), (b, other)):
        store.append(Session(user_id=uid), g, INSTAGRAM, "Instagram")

    assert len(store.query(group_id=gid)) == 3
    assert len(store.query(group_id=gid, user_id=a)) == 2
    window = store.query(group_id=gid, since=T0 + timedelta(minutes=1), until=T0 + timedelta(minutes=2))
    assert [e.user_id for e in window] == [b]


def test_identical_timestamps_are_both_kept(pair):
    gid, a, _ = pair
    store = EventStore(clock=lambda: T0)
    first = store.append(Session(user_id=a), gid, INSTAGRAM, "Instagram")
    second = store.append(Session(user_id=a), gid, INSTAGRAM, "Instagram")

    events = store.query(group_id=gid)
    assert [e.id for e in events] == [first.id, second.id]


def test_failed_commit_raises_store_write_failure(monkeypatch, pair):
    gid, a, _ = pair

    def broken_commit():
        raise OperationalError("INSERT INTO events", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session, "commit", broken_commit)
    with pytest.raises(StoreWriteFailure):
        EventStore().append(Session(user_id=a), gid, INSTAGRAM, "Instagram")


def test_local_sink_feeds_watcher_events_into_the_log(app, pair, seed):
    gid, a, _ = pair
    seed.tracked(gid, INSTAGRAM, TIKTOK)
    readings = iter([INSTAGRAM, INSTAGRAM, TIKTOK])

    def source(group_id):
        with app.app_context():
            from weaklink.watchlist import sql_tracked_app_source

            return [{"app_identifier": t.app_identifier, "app_name": t.app_name}
                    for t in sql_tracked_app_source(group_id)]

    watcher = AppWatcher(
        Session(user_id=a),
        gid,
        probe=lambda: next(readings),
        resolver=WatchListResolver(source),
        sink=LocalEventSink(app),
        settings=WatcherSettings(interval=0.01),
    )
    watcher.enable()
    outcomes = [watcher.tick() for _ in range(3)]
    watcher.disable()

    assert outcomes == [TickOutcome.EMITTED, TickOutcome.REPEAT, TickOutcome.EMITTED]
    events = EventStore().query(group_id=gid, user_id=a)
    assert [e.app_identifier for e in events] == [INSTAGRAM, TIKTOK]
    assert events[0].app_name == "Instagram"
    assert events[0].client_timestamp is not None
