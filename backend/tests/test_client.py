"""Tests for the remote bookmark client."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from bookmarchive.core.config import Settings
from bookmarchive.core.errors import ApiError, Cancelled, ConfigError, FetchError
from bookmarchive.ingest.client import (
    USER_AGENT,
    MastodonBookmarkSource,
    MastodonClient,
    bookmark_from_status,
)
from bookmarchive.ingest.ratelimit import RateLimiter
from bookmarchive.utils.time import EPOCH

NEXT_URL = "https://example.social/api/v1/bookmarks?max_id=99"

STATUS = {
    "id": "110",
    "uri": "https://example.social/users/alice/statuses/110",
    "url": "https://example.social/@alice/110",
    "created_at": "2024-01-02T03:04:05.000Z",
    "content": "<p>Hello <b>world</b></p>",
    "spoiler_text": "",
    "account": {
        "id": "7",
        "username": "alice",
        "display_name": "Alice",
        "avatar": "https://example.social/a.png",
    },
    "media_attachments": [
        {"id": "m1", "type": "image", "url": "https://example.social/m1.png", "description": None},
        {"id": "m2", "type": "image", "url": "https://example.social/m2.png", "description": "a cat"},
    ],
    "tags": [{"name": "python", "url": "https://example.social/tags/python"}],
}


def _response(status_code: int = 200, payload=None, links: dict | None = None) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else []
    resp.links = links or {}
    return resp


def _source(session: MagicMock, max_retries: int = 3) -> MastodonBookmarkSource:
    client = MastodonClient("https://example.social/", "token-123", session=session)
    limiter = RateLimiter(100, timedelta(minutes=5))
    return MastodonBookmarkSource(client, limiter, max_retries=max_retries, retry_base_delay=0.0)


@pytest.fixture
def session() -> MagicMock:
    mock = MagicMock(spec=requests.Session)
    mock.headers = {}
    return mock


def test_client_sets_auth_headers(session: MagicMock) -> None:
    MastodonClient("https://example.social", "token-123", session=session)
    assert session.headers["Authorization"] == "Bearer token-123"
    assert session.headers["User-Agent"] == USER_AGENT


def test_from_settings_requires_token() -> None:
    with pytest.raises(ConfigError):
        MastodonClient.from_settings(Settings(access_token=""))
    with pytest.raises(ConfigError):
        MastodonClient.from_settings(Settings(server_url=" ", access_token="abc"))


def test_first_page_request(session: MagicMock) -> None:
    session.get.return_value = _response(payload=[STATUS], links={"next": {"url": NEXT_URL, "rel": "next"}})
    bookmarks, cursor = _source(session).fetch_page(threading.Event(), 40, "")

    session.get.assert_called_once_with(
        "https://example.social/api/v1/bookmarks",
        params={"limit": 40},
        timeout=30.0,
    )
    assert cursor == NEXT_URL
    assert [bookmark.id for bookmark in bookmarks] == ["110"]


def test_cursor_is_followed_verbatim(session: MagicMock) -> None:
    session.get.return_value = _response(payload=[])
    bookmarks, cursor = _source(session).fetch_page(threading.Event(), 40, NEXT_URL)
    session.get.assert_called_once_with(NEXT_URL, params=None, timeout=30.0)
    assert bookmarks == []
    assert cursor == ""


def test_retries_server_errors(session: MagicMock) -> None:
    session.get.side_effect = [_response(503), _response(429), _response(payload=[STATUS])]
    bookmarks, _ = _source(session).fetch_page(threading.Event(), 40, "")
    assert session.get.call_count == 3
    assert len(bookmarks) == 1


def test_retries_transport_errors_then_gives_up(session: MagicMock) -> None:
    session.get.side_effect = requests.ConnectionError("unreachable")
    with pytest.raises(FetchError):
        _source(session, max_retries=2).fetch_page(threading.Event(), 40, "")
    assert session.get.call_count == 3


def test_client_error_is_not_retried(session: MagicMock) -> None:
    session.get.return_value = _response(401)
    with pytest.raises(ApiError) as excinfo:
        _source(session).fetch_page(threading.Event(), 40, "")
    assert excinfo.value.status_code == 401
    assert session.get.call_count == 1


def test_cancelled_before_request_makes_no_call(session: MagicMock) -> None:
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(Cancelled):
        _source(session).fetch_page(cancel, 40, "")
    session.get.assert_not_called()


def test_backoff_is_cancellable(session: MagicMock) -> None:
    session.get.return_value = _response(500)
    client = MastodonClient("https://example.social", "token", session=session)
    source = MastodonBookmarkSource(client, RateLimiter(10, timedelta(minutes=5)), max_retries=3, retry_base_delay=60.0)
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    try:
        with pytest.raises(Cancelled):
            source.fetch_page(cancel, 40, "")
    finally:
        timer.cancel()
    assert session.get.call_count == 1


def test_non_array_payload_is_rejected(session: MagicMock) -> None:
    session.get.return_value = _response(payload={"error": "nope"})
    with pytest.raises(FetchError):
        _source(session).fetch_page(threading.Event(), 40, "")


def test_bookmark_from_status() -> None:
    bookmark = bookmark_from_status(STATUS)
    assert bookmark.id == "110"
    assert bookmark.created_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert bookmark.status.account.username == "alice"
    assert [media.description for media in bookmark.status.media_attachments] == ["", "a cat"]
    assert [tag.name for tag in bookmark.status.tags] == ["python"]


def test_bookmark_from_sparse_status() -> None:
    bookmark = bookmark_from_status({"id": 5, "created_at": "garbage"})
    assert bookmark.status.id == "5"
    assert bookmark.status.account.id == ""
    assert bookmark.created_at == EPOCH
    assert bookmark.status.media_attachments == []


def test_verify_credentials(session: MagicMock) -> None:
    session.get.return_value = _response(
        payload={"id": "7", "username": "alice", "display_name": "Alice", "acct": "alice", "avatar": None}
    )
    profile = MastodonClient("https://example.social", "token", session=session).verify_credentials()
    session.get.assert_called_once_with(
        "https://example.social/api/v1/accounts/verify_credentials",
        params=None,
        timeout=30.0,
    )
    assert profile.account_id == "7"
    assert profile.acct == "alice"
    assert profile.avatar == ""


def test_verify_credentials_rejected(session: MagicMock) -> None:
    session.get.return_value = _response(401)
    with pytest.raises(ApiError):
        MastodonClient("https://example.social", "bad", session=session).verify_credentials()


def test_transport_error_after_stop_is_cancellation(session: MagicMock) -> None:
    cancel = threading.Event()

    def closed_mid_request(*args, **kwargs):
        cancel.set()
        raise requests.ConnectionError("connection pool closed")

    session.get.side_effect = closed_mid_request
    with pytest.raises(Cancelled):
        _source(session).fetch_page(cancel, 40, "")
    assert session.get.call_count == 1

    with pytest.raises(Cancelled):
        MastodonClient("https://example.social", "token", session=session).verify_credentials(cancel)


def test_close_releases_session(session: MagicMock) -> None:
    MastodonClient("https://example.social", "token", session=session).close()
    session.close.assert_called_once_with()
