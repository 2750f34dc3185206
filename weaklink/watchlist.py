# backend/weaklink/watchlist.py
"""
Watch-list resolution: which app identifiers a group is watching.

The resolver caches one immutable tuple per group. A refresh swaps the
tuple in a single assignment, so a watcher tick that already took its
snapshot keeps working on the old list and the new one applies from the
next tick.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

# Display names for common identifiers, used when a reading is not on the
# watch-list or the watch-list row has no name.
KNOWN_APP_NAMES: Dict[str, str] = {
    "com.instagram.android": "Instagram",
    "com.zhiliaoapp.musically": "TikTok",
    "com.snapchat.android": "Snapchat",
    "com.twitter.android": "Twitter",
    "com.facebook.katana": "Facebook",
    "com.google.android.youtube": "YouTube",
    "com.android.chrome": "Chrome",
    "com.apple.mobilesafari": "Safari",
    "com.burbn.instagram": "Instagram",
    "com.atebits.Tweetie2": "Twitter",
    "com.toyopagroup.picaboo": "Snapchat",
}


@dataclass(frozen=True)
class WatchedApp:
    app_identifier: str
    app_name: str
    platform: str = "android"
    group_id: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "WatchedApp":
        if isinstance(row, dict):
            get = row.get
        else:
            def get(key, default=None):
                return getattr(row, key, default)
        identifier = get("app_identifier")
        return cls(
            app_identifier=identifier,
            app_name=get("app_name") or lookup_app_name(identifier),
            platform=get("platform") or "android",
            group_id=get("group_id"),
        )


WatchList = Tuple[WatchedApp, ...]
TrackedAppSource = Callable[[int], Iterable]


def lookup_app_name(identifier: str) -> str:
    return KNOWN_APP_NAMES.get(identifier, identifier)


def identifiers(watch_list: WatchList) -> frozenset:
    return frozenset(app.app_identifier for app in watch_list)


def display_name(watch_list: WatchList, identifier: str) -> str:
    for app in watch_list:
        if app.app_identifier == identifier:
            return app.app_name
    return lookup_app_name(identifier)


def _dedupe(rows: Iterable) -> WatchList:
    seen = set()
    out = []
    for row in rows:
        app = WatchedApp.from_row(row)
        if not app.app_identifier or app.app_identifier in seen:
            continue
        seen.add(app.app_identifier)
        out.append(app)
    return tuple(out)


class WatchListResolver:
    """
    resolve(group_id) -> cached watch-list, fetched on first use.
    refetch(group_id) -> reload from the source.

    A failing source never raises out of the resolver: the last-known list
    is returned and `last_error` carries the message.
    """

    def __init__(self, source: TrackedAppSource):
        self._source = source
        self._lock = threading.Lock()
        self._cache: Dict[int, WatchList] = {}
        self.last_error: Optional[str] = None

    def resolve(self, group_id: int) -> WatchList:
        cached = self._cache.get(group_id)
        if cached is not None:
            return cached
        return self.refetch(group_id)

    def refetch(self, group_id: int) -> WatchList:
        try:
            fresh = _dedupe(self._source(group_id) or [])
        except Exception as e:
            self.last_error = f"Failed to fetch tracked apps: {e}"
            logger.warning("tracked apps fetch failed group_id=%s: %s", group_id, e)
            return self._cache.get(group_id, ())

        with self._lock:
            self._cache[group_id] = fresh
            self.last_error = None
        logger.debug("watch-list group_id=%s apps=%d", group_id, len(fresh))
        return fresh


def sql_tracked_app_source(group_id: int):
    """Reads `tracked_apps` through Flask-SQLAlchemy. Needs an app context."""
    from .models.group import TrackedApp

    return (
        TrackedApp.query.filter_by(group_id=group_id)
        .order_by(TrackedApp.created_at.asc(), TrackedApp.id.asc())
        .all()
    )
