"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from bookmarchive.models.entities import SearchResult

DEFAULT_LIMIT = 100
DEFAULT_SNIPPET_LENGTH = 200


class SearchRequest(BaseModel):
    query: str = ""
    limit: int = Field(default=DEFAULT_LIMIT, description="Non-positive values mean the default")
    offset: int = 0
    enable_highlighting: bool = False
    snippet_length: int = DEFAULT_SNIPPET_LENGTH
    filter_by_account: str = Field(default="", description='"my_posts" limits results to your own posts')

    @property
    def effective_limit(self) -> int:
        return self.limit if self.limit > 0 else DEFAULT_LIMIT

    @property
    def effective_offset(self) -> int:
        return max(self.offset, 0)

    @property
    def effective_snippet_length(self) -> int:
        return self.snippet_length if self.snippet_length > 0 else DEFAULT_SNIPPET_LENGTH


class BookmarkResponse(BaseModel):
    status_id: str
    created_at: datetime
    bookmarked_at: datetime
    search_text: str
    raw_payload: str
    account_id: str


class SearchResultResponse(BaseModel):
    bookmark: BookmarkResponse
    rank: float
    snippet: str | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchResultResponse":
        record = result.bookmark
        return cls(
            bookmark=BookmarkResponse(
                status_id=record.status_id,
                created_at=record.created_at,
                bookmarked_at=record.bookmarked_at,
                search_text=record.search_text,
                raw_payload=record.raw_payload,
                account_id=record.account_id or "",
            ),
            rank=result.rank,
            snippet=result.snippet,
        )


class StatsResponse(BaseModel):
    total_bookmarks: int
    backfill_complete: bool
    last_poll_time: datetime | None = None
    updated_at: datetime


__all__ = [
    "SearchRequest",
    "BookmarkResponse",
    "SearchResultResponse",
    "StatsResponse",
    "DEFAULT_LIMIT",
    "DEFAULT_SNIPPET_LENGTH",
]
