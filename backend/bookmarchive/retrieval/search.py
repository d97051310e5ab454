"""Search orchestration over the bookmark archive."""

from __future__ import annotations

import sqlite3
import time
from typing import Any

from bookmarchive.core.errors import QueryError, StoreError
from bookmarchive.core.logging import get_logger
from bookmarchive.core.metrics import SEARCH_LATENCY
from bookmarchive.db.store import BOOKMARK_COLUMNS, BookmarkStore, row_to_record
from bookmarchive.models.dto import (
    DEFAULT_LIMIT,
    DEFAULT_SNIPPET_LENGTH,
    SearchRequest,
    StatsResponse,
)
from bookmarchive.models.entities import IngestionCheckpoint, SearchResult
from bookmarchive.retrieval.query import prepare_query
from bookmarchive.utils.time import utc_now

logger = get_logger(__name__)

MY_POSTS = "my_posts"
# snippet() refuses more than 64 tokens per fragment.
MAX_SNIPPET_TOKENS = 64
HIGHLIGHT_OPEN = "<mark>"
HIGHLIGHT_CLOSE = "</mark>"
ELLIPSIS = "..."

_SEARCH_COLUMNS = (
    "b.status_id, b.created_at, b.bookmarked_at, b.search_text, b.raw_payload, "
    "COALESCE(b.account_id, '') AS account_id, bm25(bookmarks_fts) AS rank"
)


class QueryService:
    """Ranked full-text search and recent listing on top of the store."""

    def __init__(self, store: BookmarkStore) -> None:
        self.store = store
        self.db = store.db

    def search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        filter_by_account: str = "",
        highlight: bool = False,
        snippet_length: int = DEFAULT_SNIPPET_LENGTH,
    ) -> list[SearchResult]:
        """Run a bm25-ranked FTS5 match; lower rank means a better match.

        A blank query lists the most recent bookmarks instead.
        """
        if not query.strip():
            return self.list_recent(limit, offset, filter_by_account)
        limit = limit if limit > 0 else DEFAULT_LIMIT
        offset = max(offset, 0)
        snippet_length = snippet_length if snippet_length > 0 else DEFAULT_SNIPPET_LENGTH

        account_clause, account_params = self._account_filter(filter_by_account, "b.account_id", "AND")
        if account_clause is None:
            return []

        columns = _SEARCH_COLUMNS
        params: list[Any] = []
        if highlight:
            columns += ", snippet(bookmarks_fts, 1, ?, ?, ?, ?) AS snippet"
            params.extend([HIGHLIGHT_OPEN, HIGHLIGHT_CLOSE, ELLIPSIS, min(snippet_length, MAX_SNIPPET_TOKENS)])
        params.append(prepare_query(query))
        params.extend(account_params)
        params.extend([limit, offset])

        start_time = time.perf_counter()
        try:
            rows = self.db.query(
                f"""
                SELECT {columns}
                FROM bookmarks_fts
                JOIN bookmarks b ON b.rowid = bookmarks_fts.rowid
                WHERE bookmarks_fts MATCH ?{account_clause}
                ORDER BY rank
                LIMIT ? OFFSET ?
                """,
                params,
            )
        except sqlite3.OperationalError as exc:
            raise QueryError(f"invalid search query {query!r}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"search failed: {exc}") from exc
        finally:
            SEARCH_LATENCY.labels(mode="ranked").observe(time.perf_counter() - start_time)

        return [
            SearchResult(
                bookmark=row_to_record(row),
                rank=float(row["rank"]),
                snippet=row["snippet"] if highlight else None,
            )
            for row in rows
        ]

    def list_recent(self, limit: int = DEFAULT_LIMIT, offset: int = 0, filter_by_account: str = "") -> list[SearchResult]:
        """Most recently bookmarked first, with a neutral rank of 0.0."""
        limit = limit if limit > 0 else DEFAULT_LIMIT
        offset = max(offset, 0)
        account_clause, params = self._account_filter(filter_by_account, "account_id", "WHERE")
        if account_clause is None:
            return []
        params.extend([limit, offset])

        start_time = time.perf_counter()
        try:
            rows = self.db.query(
                f"SELECT {BOOKMARK_COLUMNS} FROM bookmarks{account_clause} "
                "ORDER BY bookmarked_at DESC LIMIT ? OFFSET ?",
                params,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"failed to list recent bookmarks: {exc}") from exc
        finally:
            SEARCH_LATENCY.labels(mode="recent").observe(time.perf_counter() - start_time)
        return [SearchResult(bookmark=row_to_record(row)) for row in rows]

    def search_or_recent(self, request: SearchRequest) -> list[SearchResult]:
        if not request.query.strip():
            return self.list_recent(
                request.effective_limit,
                request.effective_offset,
                request.filter_by_account,
            )
        return self.search(
            request.query,
            limit=request.effective_limit,
            offset=request.effective_offset,
            filter_by_account=request.filter_by_account,
            highlight=request.enable_highlighting,
            snippet_length=request.effective_snippet_length,
        )

    def stats(self) -> StatsResponse:
        total = self.store.count()
        try:
            checkpoint = self.store.get_checkpoint()
        except StoreError as exc:
            logger.error("Failed to read ingest checkpoint: %s", exc)
            checkpoint = IngestionCheckpoint()
        return StatsResponse(
            total_bookmarks=total,
            backfill_complete=checkpoint.complete,
            last_poll_time=checkpoint.last_poll_at,
            updated_at=utc_now(),
        )

    # ------------------------------------------------------------------

    def _account_filter(self, filter_by_account: str, column: str, keyword: str) -> tuple[str | None, list[Any]]:
        """Return the SQL fragment for the account filter.

        ``None`` means the filter cannot match anything (no cached profile).
        """
        if filter_by_account != MY_POSTS:
            return "", []
        profile = self.store.get_account_profile()
        if profile is None:
            logger.debug("No account profile cached; my_posts filter yields nothing")
            return None, []
        return f" {keyword} {column} = ?", [profile.account_id]


__all__ = ["QueryService", "MY_POSTS", "MAX_SNIPPET_TOKENS"]
