"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Author of a status."""

    id: str
    username: str = ""
    display_name: str = ""
    avatar: str = ""


@dataclass(slots=True)
class MediaAttachment:
    id: str
    type: str = ""
    url: str = ""
    description: str = ""


@dataclass(slots=True)
class Tag:
    name: str
    url: str = ""


@dataclass(slots=True)
class Status:
    """A post as returned by the remote server, reduced to what is archived."""

    id: str
    created_at: datetime
    account: Account
    uri: str = ""
    url: str = ""
    content: str = ""
    spoiler_text: str = ""
    media_attachments: list[MediaAttachment] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)


@dataclass(slots=True)
class Bookmark:
    """One entry of the remote bookmark list."""

    id: str
    status: Status
    created_at: datetime


@dataclass(slots=True)
class IngestStats:
    """Aggregated batch statistics."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
        }


__all__ = [
    "Account",
    "MediaAttachment",
    "Tag",
    "Status",
    "Bookmark",
    "IngestStats",
]
