"""Test fixtures for bookmarchive."""

from __future__ import annotations

import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from bookmarchive.core.errors import Cancelled  # noqa: E402
from bookmarchive.ingest.types import Account, Bookmark, MediaAttachment, Status, Tag  # noqa: E402


def _reset_singletons() -> None:
    from bookmarchive.api import dependencies as deps
    from bookmarchive.core.config import get_settings

    deps.shutdown_dependencies()
    deps.get_app_settings.cache_clear()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("BMA_DB_PATH", str(tmp_path / "archive.db"))
    monkeypatch.setenv("BMA_INGEST_ENABLED", "false")
    monkeypatch.delenv("BMA_CONFIG", raising=False)
    monkeypatch.delenv("BMA_ACCESS_TOKEN", raising=False)
    monkeypatch.chdir(tmp_path)
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def store(tmp_path: Path):
    from bookmarchive.db.sqlite import SQLiteDatabase
    from bookmarchive.db.store import open_store

    db = SQLiteDatabase(tmp_path / "store.db")
    archive = open_store(db)
    yield archive
    db.close()


@pytest.fixture
def settings(tmp_path: Path):
    from bookmarchive.core.config import Settings

    return Settings(
        db_path=tmp_path / "pipeline.db",
        backfill_delay="0s",
        poll_interval="20ms",
        batch_size=2,
    )


def make_bookmark(
    status_id: str,
    content: str = "<p>Hello fediverse</p>",
    username: str = "alice",
    display_name: str = "Alice",
    account_id: str = "100",
    spoiler_text: str = "",
    tags: Sequence[str] = (),
    media_descriptions: Sequence[str] = (),
    created_at: datetime | None = None,
) -> Bookmark:
    created = created_at or datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    status = Status(
        id=status_id,
        created_at=created,
        account=Account(id=account_id, username=username, display_name=display_name),
        url=f"https://example.social/@{username}/{status_id}",
        content=content,
        spoiler_text=spoiler_text,
        media_attachments=[
            MediaAttachment(id=f"m{index}", type="image", description=description)
            for index, description in enumerate(media_descriptions)
        ],
        tags=[Tag(name=name) for name in tags],
    )
    return Bookmark(id=status_id, status=status, created_at=created)


@pytest.fixture
def bookmark_factory() -> Callable[..., Bookmark]:
    return make_bookmark


class FakeSource:
    """In-memory bookmark source keyed by cursor.

    ``errors`` are raised, in order, by the next calls before any page is served.
    """

    def __init__(
        self,
        pages: dict[str, tuple[list[Bookmark], str]] | None = None,
        errors: list[Exception] | None = None,
    ) -> None:
        self.pages = pages or {}
        self.errors = list(errors or [])
        self.calls: list[str] = []
        self.fetched = threading.Event()

    def fetch_page(self, cancel: threading.Event, limit: int, cursor: str) -> tuple[list[Bookmark], str]:
        if cancel.is_set():
            raise Cancelled("fetch cancelled")
        self.calls.append(cursor)
        self.fetched.set()
        if self.errors:
            raise self.errors.pop(0)
        bookmarks, next_cursor = self.pages.get(cursor, ([], ""))
        return list(bookmarks), next_cursor


@pytest.fixture
def fake_source_cls() -> type[FakeSource]:
    return FakeSource
