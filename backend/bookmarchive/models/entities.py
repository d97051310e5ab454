"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class BookmarkRecord:
    status_id: str
    created_at: datetime
    bookmarked_at: datetime
    search_text: str
    raw_payload: str
    account_id: str | None = None


@dataclass(slots=True)
class IngestionCheckpoint:
    cursor: str = ""
    complete: bool = False
    last_poll_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class AccountProfile:
    account_id: str
    username: str
    display_name: str
    acct: str
    avatar: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class SearchResult:
    bookmark: BookmarkRecord
    rank: float = 0.0
    snippet: str | None = None
