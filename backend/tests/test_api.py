"""API integration tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import orjson
import pytest
from fastapi.testclient import TestClient

from bookmarchive.api import dependencies as deps
from bookmarchive.api.routes_events import stream_events
from bookmarchive.app import app
from bookmarchive.core.events import EventBroadcaster
from bookmarchive.ingest.normalize import normalize


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _seed(make_bookmark) -> None:
    store = deps.get_store()
    fields = deps.get_app_settings().indexed_fields
    store.insert_or_replace(normalize(make_bookmark("1", content="<p>Rust borrow checker</p>"), fields))
    store.insert_or_replace(normalize(make_bookmark("2", content="<p>Sourdough starter</p>"), fields))
    store.insert_or_replace(normalize(make_bookmark("3", content="<p>Tide pools at dawn</p>"), fields))


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_search_flow(client: TestClient, bookmark_factory) -> None:
    _seed(bookmark_factory)
    resp = client.post("/api/search", json={"query": "borrow", "enable_highlighting": True})
    assert resp.status_code == 200
    results = resp.json()
    assert [item["bookmark"]["status_id"] for item in results] == ["1"]
    assert results[0]["rank"] < 0
    assert "<mark>borrow</mark>" in results[0]["snippet"]
    assert results[0]["bookmark"]["account_id"] == "100"


def test_empty_query_lists_recent(client: TestClient, bookmark_factory) -> None:
    _seed(bookmark_factory)
    resp = client.post("/api/search", json={"query": "", "limit": 2})
    assert resp.status_code == 200
    results = resp.json()
    assert len(results) == 2
    assert all(item["rank"] == 0.0 for item in results)
    assert all(item["snippet"] is None for item in results)


def test_search_on_empty_archive(client: TestClient) -> None:
    resp = client.post("/api/search", json={})
    assert resp.status_code == 200
    assert resp.json() == []


def test_malformed_query_is_rejected(client: TestClient, bookmark_factory) -> None:
    _seed(bookmark_factory)
    resp = client.post("/api/search", json={"query": '"unterminated'})
    assert resp.status_code == 400


def test_stats(client: TestClient, bookmark_factory) -> None:
    _seed(bookmark_factory)
    payload = client.get("/api/stats").json()
    assert payload["total_bookmarks"] == 3
    assert payload["backfill_complete"] is False
    assert payload["last_poll_time"] is None

    polled = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    deps.get_store().update_checkpoint("", True, polled)
    payload = client.get("/api/stats").json()
    assert payload["backfill_complete"] is True
    assert datetime.fromisoformat(payload["last_poll_time"].replace("Z", "+00:00")) == polled


def test_metrics_endpoint(client: TestClient) -> None:
    client.post("/api/search", json={"query": "anything"})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "bma_search_latency_seconds" in resp.text


def test_event_stream_sends_greeting_and_stats(client: TestClient, bookmark_factory) -> None:
    _seed(bookmark_factory)
    # A closed broadcaster hands new subscribers an end marker, so the stream terminates.
    deps.get_broadcaster().close()
    resp = client.get("/api/events")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    frames = [
        orjson.loads(chunk[len("data: "):])
        for chunk in resp.text.split("\n\n")
        if chunk.startswith("data: ")
    ]
    assert frames == [
        {"type": "connected"},
        {"type": "stats", "payload": {"total_bookmarks": 3}},
    ]


def test_event_stream_subscribes_only_while_streaming(store) -> None:
    broadcaster = EventBroadcaster()

    async def scenario() -> None:
        response = await stream_events(MagicMock(), broadcaster=broadcaster, store=store)
        assert broadcaster.subscriber_count == 0

        frames = response.body_iterator
        assert orjson.loads((await frames.__anext__())[len(b"data: "):]) == {"type": "connected"}
        assert broadcaster.subscriber_count == 1
        await frames.aclose()
        assert broadcaster.subscriber_count == 0

    asyncio.run(scenario())
