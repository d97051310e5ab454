"""Turn fetched bookmarks into archive records."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import orjson
from bs4 import BeautifulSoup

from bookmarchive.core.logging import get_logger
from bookmarchive.ingest.types import Bookmark
from bookmarchive.models.entities import BookmarkRecord
from bookmarchive.utils.text import normalize as collapse_whitespace
from bookmarchive.utils.time import utc_now

logger = get_logger(__name__)

_DROPPED_TAGS = ["script", "style"]


def strip_html(html: str) -> str:
    """Reduce post HTML to plain text.

    Tags become spaces so adjacent paragraphs do not merge. Angle brackets
    that were escaped in the source stay escaped in the output.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for node in soup(_DROPPED_TAGS):
        node.decompose()
    text = collapse_whitespace(soup.get_text(separator=" "))
    return text.replace("<", "&lt;").replace(">", "&gt;")


def build_search_text(bookmark: Bookmark, indexed_fields: Sequence[str]) -> str:
    """Concatenate the selected fields in a fixed order; unknown names are ignored."""
    fields = set(indexed_fields)
    status = bookmark.status
    parts: list[str] = []
    if "content" in fields and status.content:
        parts.append(strip_html(status.content))
    if "spoiler_text" in fields and status.spoiler_text:
        parts.append(status.spoiler_text)
    if "username" in fields and status.account.username:
        parts.append(status.account.username)
    if "display_name" in fields and status.account.display_name:
        parts.append(status.account.display_name)
    if "media_descriptions" in fields:
        parts.extend(media.description for media in status.media_attachments if media.description)
    if "hashtags" in fields:
        parts.extend(tag.name for tag in status.tags if tag.name)
    return " ".join(part for part in parts if part)


def _encode_payload(bookmark: Bookmark) -> bytes:
    return orjson.dumps(bookmark)


def serialize_bookmark(bookmark: Bookmark) -> str:
    try:
        payload = _encode_payload(bookmark)
    except (orjson.JSONEncodeError, TypeError) as exc:
        logger.warning("Falling back to minimal payload for %s: %s", bookmark.id, exc)
        payload = orjson.dumps(
            {
                "id": bookmark.id,
                "status_id": bookmark.status.id,
                "created_at": bookmark.created_at.isoformat(),
            }
        )
    return payload.decode("utf-8")


def normalize(bookmark: Bookmark, indexed_fields: Sequence[str], now: datetime | None = None) -> BookmarkRecord:
    """Build the persisted record; ``bookmarked_at`` is the ingestion time."""
    return BookmarkRecord(
        status_id=bookmark.status.id,
        created_at=bookmark.status.created_at,
        bookmarked_at=now or utc_now(),
        search_text=build_search_text(bookmark, indexed_fields),
        raw_payload=serialize_bookmark(bookmark),
        account_id=bookmark.status.account.id or "",
    )


__all__ = ["strip_html", "build_search_text", "serialize_bookmark", "normalize"]
