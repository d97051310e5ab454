"""Full-text query preparation."""

from __future__ import annotations

import re

_BOOLEAN_RE = re.compile(r"\s(AND|OR|NOT)\s", re.IGNORECASE)


def prepare_query(query: str) -> str:
    """Turn user input into an FTS5 MATCH expression.

    Quoted phrases and boolean expressions pass through untouched; plain
    terms become prefix searches so ``hello world`` matches ``helloworld``.
    """
    query = query.strip()
    if len(query) >= 2 and query.startswith('"') and query.endswith('"'):
        return query
    if _BOOLEAN_RE.search(query):
        return query
    terms = []
    for term in query.split():
        if not term.endswith("*") and '"' not in term:
            term += "*"
        terms.append(term)
    return " ".join(terms)


__all__ = ["prepare_query"]
