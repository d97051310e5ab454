"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def preview(text: str, limit: int = 100) -> str:
    """Return at most ``limit`` characters of ``text``."""
    return text[: max(0, limit)]
