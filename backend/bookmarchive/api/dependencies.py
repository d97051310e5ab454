"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from bookmarchive.core.config import Settings, get_settings
from bookmarchive.core.events import EventBroadcaster
from bookmarchive.db.sqlite import SQLiteDatabase
from bookmarchive.db.store import BookmarkStore, open_store
from bookmarchive.ingest.client import MastodonBookmarkSource, MastodonClient
from bookmarchive.ingest.pipeline import IngestPipeline
from bookmarchive.ingest.worker import JOIN_TIMEOUT_SECONDS, IngestWorker
from bookmarchive.retrieval import QueryService

_DB: SQLiteDatabase | None = None
_STORE: BookmarkStore | None = None
_QUERY_SERVICE: QueryService | None = None
_BROADCASTER: EventBroadcaster | None = None
_WORKER: IngestWorker | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        _DB = SQLiteDatabase(
            settings.db_path,
            wal_mode=settings.wal_mode,
            busy_timeout=settings.busy_timeout,
        )
    return _DB


def get_store() -> BookmarkStore:
    global _STORE
    if _STORE is None:
        _STORE = open_store(get_database())
    return _STORE


def get_query_service() -> QueryService:
    global _QUERY_SERVICE
    if _QUERY_SERVICE is None:
        _QUERY_SERVICE = QueryService(get_store())
    return _QUERY_SERVICE


def get_broadcaster() -> EventBroadcaster:
    global _BROADCASTER
    if _BROADCASTER is None:
        _BROADCASTER = EventBroadcaster()
    return _BROADCASTER


def get_ingest_worker() -> IngestWorker:
    """Build the worker; raises ``ConfigError`` when remote access is not configured."""
    global _WORKER
    if _WORKER is None:
        settings = get_app_settings()
        client = MastodonClient.from_settings(settings)
        pipeline = IngestPipeline(
            store=get_store(),
            source=MastodonBookmarkSource.from_settings(settings, client=client),
            settings=settings,
            events=get_broadcaster(),
            client=client,
        )
        # A request already in flight can outlive stop() by up to the client timeout.
        _WORKER = IngestWorker(pipeline, join_timeout=settings.client_timeout.total_seconds() + JOIN_TIMEOUT_SECONDS)
    return _WORKER


def shutdown_dependencies() -> None:
    """Stop the worker, end event streams and close the archive, in that order."""
    global _DB, _STORE, _QUERY_SERVICE, _BROADCASTER, _WORKER
    if _WORKER is not None:
        _WORKER.stop()
    if _BROADCASTER is not None:
        _BROADCASTER.close()
    if _DB is not None:
        _DB.close()
    _DB = None
    _STORE = None
    _QUERY_SERVICE = None
    _BROADCASTER = None
    _WORKER = None


__all__ = [
    "get_app_settings",
    "get_database",
    "get_store",
    "get_query_service",
    "get_broadcaster",
    "get_ingest_worker",
    "shutdown_dependencies",
]
