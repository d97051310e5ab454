"""Retrieval components."""

from .query import prepare_query
from .search import QueryService

__all__ = [
    "QueryService",
    "prepare_query",
]
