"""Tests for archive search and listing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bookmarchive.core.errors import QueryError
from bookmarchive.models.dto import SearchRequest
from bookmarchive.models.entities import AccountProfile, BookmarkRecord
from bookmarchive.retrieval import QueryService

BASE_TIME = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _record(status_id: str, text: str, account_id: str, minutes: int) -> BookmarkRecord:
    stamp = BASE_TIME + timedelta(minutes=minutes)
    return BookmarkRecord(status_id, stamp, stamp, text, "{}", account_id)


@pytest.fixture
def service(store) -> QueryService:
    store.insert_or_replace(_record("1", "learning golang concurrency patterns", "A", 1))
    store.insert_or_replace(_record("2", "python asyncio tips", "B", 2))
    store.insert_or_replace(_record("3", "golang golang golang generics", "B", 3))
    store.insert_or_replace(_record("5", "cooking fresh pasta", "C", -2))
    store.insert_or_replace(_record("6", "hiking mountain trails", "C", -1))
    store.insert_or_replace(_record("4", "gardening in spring", "A", 4))
    return QueryService(store)


def _ids(results) -> list[str]:
    return [result.bookmark.status_id for result in results]


def test_search_matches_and_ranks(service: QueryService) -> None:
    results = service.search("golang")
    assert set(_ids(results)) == {"1", "3"}
    assert _ids(results)[0] == "3"
    ranks = [result.rank for result in results]
    assert ranks == sorted(ranks)
    assert all(rank < 0 for rank in ranks)
    assert all(result.snippet is None for result in results)


def test_search_uses_prefix_and_stemming(service: QueryService) -> None:
    assert _ids(service.search("gard")) == ["4"]
    assert _ids(service.search("learn")) == ["1"]
    assert _ids(service.search("GOLANG AND generics")) == ["3"]


def test_search_highlighting(service: QueryService) -> None:
    results = service.search("asyncio", highlight=True, snippet_length=10)
    assert len(results) == 1
    assert "<mark>asyncio</mark>" in results[0].snippet


def test_search_snippet_length_is_clamped(service: QueryService) -> None:
    results = service.search("asyncio", highlight=True, snippet_length=500)
    assert "<mark>asyncio</mark>" in results[0].snippet


def test_search_limit_and_offset(service: QueryService) -> None:
    first = service.search("golang", limit=1)
    second = service.search("golang", limit=1, offset=1)
    assert len(first) == 1 and len(second) == 1
    assert _ids(first) != _ids(second)
    assert len(service.search("golang", limit=0)) == 2
    assert len(service.search("golang", offset=-5)) == 2


def test_blank_search_lists_recent(service: QueryService) -> None:
    assert _ids(service.search("   ", limit=3)) == ["4", "3", "2"]
    assert all(result.rank == 0.0 for result in service.search(""))


def test_malformed_query_raises(service: QueryService) -> None:
    with pytest.raises(QueryError):
        service.search('"unterminated')


def test_list_recent_orders_by_bookmark_time(service: QueryService) -> None:
    results = service.list_recent()
    assert _ids(results) == ["4", "3", "2", "1", "6", "5"]
    assert all(result.rank == 0.0 for result in results)
    assert _ids(service.list_recent(limit=2, offset=1)) == ["3", "2"]


def test_search_or_recent_falls_back(service: QueryService) -> None:
    recent = service.search_or_recent(SearchRequest(query="  ", limit=3))
    assert _ids(recent) == _ids(service.list_recent(limit=3))

    ranked = service.search_or_recent(SearchRequest(query="golang", enable_highlighting=True))
    assert set(_ids(ranked)) == {"1", "3"}
    assert all(result.snippet for result in ranked)


def test_my_posts_without_profile_is_empty(service: QueryService) -> None:
    assert service.search("golang", filter_by_account="my_posts") == []
    assert service.list_recent(filter_by_account="my_posts") == []


def test_my_posts_filters_to_profile_account(service: QueryService, store) -> None:
    store.upsert_account_profile(AccountProfile("A", "alice", "Alice", "alice"))
    assert _ids(service.search("golang", filter_by_account="my_posts")) == ["1"]
    assert _ids(service.list_recent(filter_by_account="my_posts")) == ["4", "1"]
    assert len(service.list_recent(filter_by_account="everyone")) == 6


def test_stats(service: QueryService, store) -> None:
    stats = service.stats()
    assert stats.total_bookmarks == 6
    assert stats.backfill_complete is False
    assert stats.last_poll_time is None

    polled = datetime(2024, 4, 1, tzinfo=timezone.utc)
    store.update_checkpoint("", True, polled)
    stats = service.stats()
    assert stats.backfill_complete is True
    assert stats.last_poll_time == polled
