"""Bookmark archive persistence: records, checkpoint and account profile."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from bookmarchive.core.errors import CheckpointMissing, StoreError
from bookmarchive.core.logging import get_logger
from bookmarchive.db.schema import apply_migrations
from bookmarchive.db.sqlite import SQLiteDatabase
from bookmarchive.models.entities import AccountProfile, BookmarkRecord, IngestionCheckpoint
from bookmarchive.utils.time import from_db_timestamp, to_db_timestamp

logger = get_logger(__name__)

BOOKMARK_COLUMNS = (
    "status_id, created_at, bookmarked_at, search_text, raw_payload, "
    "COALESCE(account_id, '') AS account_id"
)


class BookmarkStore:
    """Owns the archive tables; the FTS index follows the bookmarks table via triggers."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def initialize(self) -> None:
        try:
            apply_migrations(self.db)
        except sqlite3.Error as exc:
            raise StoreError(f"failed to run migrations: {exc}") from exc

    def close(self) -> None:
        self.db.close()

    # Bookmarks -------------------------------------------------------

    def insert_or_replace(self, record: BookmarkRecord) -> None:
        """Upsert by status_id; the update trigger re-derives the index entry."""
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO bookmarks (status_id, created_at, bookmarked_at, search_text, raw_payload, account_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(status_id) DO UPDATE SET
                      created_at = excluded.created_at,
                      bookmarked_at = excluded.bookmarked_at,
                      search_text = excluded.search_text,
                      raw_payload = excluded.raw_payload,
                      account_id = excluded.account_id
                    """,
                    [
                        record.status_id,
                        to_db_timestamp(record.created_at),
                        to_db_timestamp(record.bookmarked_at),
                        record.search_text,
                        record.raw_payload,
                        record.account_id,
                    ],
                )
        except sqlite3.Error as exc:
            raise StoreError(f"failed to insert bookmark {record.status_id}: {exc}") from exc

    def get_by_id(self, status_id: str) -> BookmarkRecord | None:
        row = self._query_one(
            f"SELECT {BOOKMARK_COLUMNS} FROM bookmarks WHERE status_id = ?",
            [status_id],
        )
        return row_to_record(row) if row else None

    def exists(self, status_id: str) -> bool:
        return self._query_one("SELECT 1 FROM bookmarks WHERE status_id = ?", [status_id]) is not None

    def count(self) -> int:
        row = self._query_one("SELECT COUNT(*) AS count FROM bookmarks")
        return int(row["count"]) if row else 0

    # Checkpoint ------------------------------------------------------

    def get_checkpoint(self) -> IngestionCheckpoint:
        row = self._query_one(
            "SELECT cursor, complete, last_poll_at, created_at, updated_at FROM ingest_checkpoint WHERE id = 1"
        )
        if row is None:
            raise CheckpointMissing("ingest checkpoint not initialized")
        return IngestionCheckpoint(
            cursor=row["cursor"] or "",
            complete=bool(row["complete"]),
            last_poll_at=from_db_timestamp(row["last_poll_at"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )

    def update_checkpoint(self, cursor: str, complete: bool, poll_time: datetime | None) -> None:
        try:
            with self.db.transaction() as db_cursor:
                db_cursor.execute(
                    """
                    UPDATE ingest_checkpoint
                    SET cursor = ?, complete = ?, last_poll_at = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE id = 1
                    """,
                    [cursor, int(complete), to_db_timestamp(poll_time) if poll_time else None],
                )
                updated = db_cursor.rowcount
        except sqlite3.Error as exc:
            raise StoreError(f"failed to update checkpoint: {exc}") from exc
        if updated == 0:
            raise CheckpointMissing("ingest checkpoint row not found")

    # Account profile -------------------------------------------------

    def get_account_profile(self) -> AccountProfile | None:
        row = self._query_one(
            """
            SELECT account_id, username, display_name, acct, COALESCE(avatar, '') AS avatar, created_at, updated_at
            FROM account_profile WHERE id = 1
            """
        )
        if row is None:
            return None
        return AccountProfile(
            account_id=row["account_id"],
            username=row["username"],
            display_name=row["display_name"],
            acct=row["acct"],
            avatar=row["avatar"],
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )

    def upsert_account_profile(self, profile: AccountProfile) -> None:
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO account_profile (id, account_id, username, display_name, acct, avatar)
                    VALUES (1, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      account_id = excluded.account_id,
                      username = excluded.username,
                      display_name = excluded.display_name,
                      acct = excluded.acct,
                      avatar = excluded.avatar,
                      updated_at = CURRENT_TIMESTAMP
                    """,
                    [
                        profile.account_id,
                        profile.username,
                        profile.display_name,
                        profile.acct,
                        profile.avatar,
                    ],
                )
        except sqlite3.Error as exc:
            raise StoreError(f"failed to store account profile: {exc}") from exc

    # ------------------------------------------------------------------

    def _query_one(self, sql: str, params: list | None = None) -> sqlite3.Row | None:
        try:
            return self.db.query_one(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc


def row_to_record(row: sqlite3.Row) -> BookmarkRecord:
    return BookmarkRecord(
        status_id=row["status_id"],
        created_at=from_db_timestamp(row["created_at"]),
        bookmarked_at=from_db_timestamp(row["bookmarked_at"]),
        search_text=row["search_text"],
        raw_payload=row["raw_payload"],
        account_id=row["account_id"],
    )


def open_store(db: SQLiteDatabase) -> BookmarkStore:
    """Create the store and make sure its schema is current."""
    store = BookmarkStore(db)
    store.initialize()
    logger.info("Opened bookmark archive at %s", db.db_path)
    return store


__all__ = ["BookmarkStore", "open_store", "row_to_record", "BOOKMARK_COLUMNS"]
