from datetime import datetime
from unittest import mock

import pytest
import requests

from weaklink.app_watcher import BreakDraft
from weaklink.client import WeakLinkClient
from weaklink.errors import StoreWriteFailure, WatchListUnavailable
from weaklink.session import Session
from weaklink.watchlist import WatchListResolver, identifiers

pytestmark = pytest.mark.unit

DRAFT = BreakDraft(
    user_id=2,
    group_id=1,
    app_identifier="com.instagram.android",
    app_name="Instagram",
    observed_at=datetime(2025, 11, 20, 9, 0),
)


def make_client():
    http = mock.Mock()
    http.headers = {}
    return WeakLinkClient("http://api.local/", "tok", timeout=2.0, http=http), http


def ok(payload):
    resp = mock.Mock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = payload
    return resp


def test_client_sends_bearer_token():
    client, http = make_client()
    assert http.headers["Authorization"] == "Bearer tok"
    assert client.base_url == "http://api.local"


def test_tracked_apps():
    client, http = make_client()
    http.get.return_value = ok({"tracked_apps": [{"app_identifier": "com.instagram.android"}]})

    apps = client.tracked_apps(1)

    http.get.assert_called_once_with("http://api.local/api/groups/1/tracked-apps", timeout=2.0)
    assert apps == [{"app_identifier": "com.instagram.android"}]


def test_tracked_apps_network_error():
    client, http = make_client()
    http.get.side_effect = requests.ConnectionError("refused")

    with pytest.raises(WatchListUnavailable):
        client.tracked_apps(1)


def test_append_event_posts_draft():
    client, http = make_client()
    http.post.return_value = ok({"event": {"id": 42}})

    event_id = client.append_event(Session(user_id=2), DRAFT)

    assert event_id == 42
    _, kwargs = http.post.call_args
    assert kwargs["json"] == {
        "group_id": 1,
        "app_identifier": "com.instagram.android",
        "app_name": "Instagram",
        "client_timestamp": "2025-11-20T09:00:00",
    }


def test_append_event_http_error_is_store_write_failure():
    client, http = make_client()
    resp = mock.Mock()
    resp.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    http.post.return_value = resp

    with pytest.raises(StoreWriteFailure):
        client.append_event(Session(user_id=2), DRAFT)


def test_resolver_keeps_last_list_when_backend_is_down():
    client, http = make_client()
    http.get.return_value = ok({"tracked_apps": [{"app_identifier": "com.instagram.android", "app_name": "Instagram"}]})
    resolver = WatchListResolver(client.tracked_apps)
    first = resolver.resolve(1)

    http.get.side_effect = requests.Timeout("slow")
    again = resolver.refetch(1)

    assert again == first
    assert identifiers(again) == {"com.instagram.android"}
    assert "slow" in resolver.last_error


def test_resolver_dedupes_and_fills_names():
    resolver = WatchListResolver(lambda gid: [
        {"app_identifier": "com.zhiliaoapp.musically"},
        {"app_identifier": "com.zhiliaoapp.musically", "app_name": "Other"},
        {"app_identifier": ""},
    ])
    watch_list = resolver.resolve(5)
    assert len(watch_list) == 1
    assert watch_list[0].app_name == "TikTok"
