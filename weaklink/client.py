# backend/weaklink/client.py
"""
Thin HTTP client the device-side watcher uses to talk to the API.

Its two callables plug straight into the watcher:
    WatchListResolver(client.tracked_apps)
    AppWatcher(..., sink=client.append_event)
"""
import logging
from typing import List, Optional

import requests

from .errors import StoreWriteFailure, WatchListUnavailable
from .session import Session

logger = logging.getLogger(__name__)


class WeakLinkClient:
    def __init__(self, base_url: str, token: str, timeout: float = 5.0, http=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http or requests.Session()
        self._http.headers.update({"Authorization": f"Bearer {token}"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def tracked_apps(self, group_id: int) -> List[dict]:
        try:
            resp = self._http.get(
                self._url(f"/api/groups/{group_id}/tracked-apps"),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise WatchListUnavailable(str(e)) from e
        return resp.json().get("tracked_apps", [])

    def append_event(self, session: Session, draft) -> int:
        payload = {
            "group_id": draft.group_id,
            "app_identifier": draft.app_identifier,
            "app_name": draft.app_name,
            "client_timestamp": draft.observed_at.isoformat() if draft.observed_at else None,
        }
        headers: Optional[dict] = None
        if session.token:
            headers = {"Authorization": f"Bearer {session.token}"}
        try:
            resp = self._http.post(
                self._url("/api/events"),
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise StoreWriteFailure(str(e)) from e
        return int(resp.json()["event"]["id"])
