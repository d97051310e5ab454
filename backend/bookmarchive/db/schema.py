"""Archive schema and idempotent migrations."""

from __future__ import annotations

import sqlite3

from bookmarchive.core.logging import get_logger
from bookmarchive.db.sqlite import SQLiteDatabase

logger = get_logger(__name__)

BOOKMARK_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS bookmarks (
      status_id TEXT PRIMARY KEY,
      created_at DATETIME NOT NULL,
      bookmarked_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
      search_text TEXT NOT NULL,
      raw_payload TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_created_at ON bookmarks(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_bookmarked_at ON bookmarks(bookmarked_at)",
)

FTS_TABLES = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS bookmarks_fts USING fts5(
      status_id UNINDEXED,
      search_text,
      content='bookmarks',
      content_rowid='rowid',
      tokenize='porter unicode61 remove_diacritics 1'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS bookmarks_fts_insert AFTER INSERT ON bookmarks BEGIN
      INSERT INTO bookmarks_fts(rowid, status_id, search_text)
      VALUES (new.rowid, new.status_id, new.search_text);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS bookmarks_fts_delete AFTER DELETE ON bookmarks BEGIN
      INSERT INTO bookmarks_fts(bookmarks_fts, rowid, status_id, search_text)
      VALUES ('delete', old.rowid, old.status_id, old.search_text);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS bookmarks_fts_update AFTER UPDATE ON bookmarks BEGIN
      INSERT INTO bookmarks_fts(bookmarks_fts, rowid, status_id, search_text)
      VALUES ('delete', old.rowid, old.status_id, old.search_text);
      INSERT INTO bookmarks_fts(rowid, status_id, search_text)
      VALUES (new.rowid, new.status_id, new.search_text);
    END
    """,
)

CHECKPOINT_TABLE = (
    """
    CREATE TABLE IF NOT EXISTS ingest_checkpoint (
      id INTEGER PRIMARY KEY DEFAULT 1,
      cursor TEXT NOT NULL DEFAULT '',
      complete BOOLEAN NOT NULL DEFAULT FALSE,
      last_poll_at DATETIME,
      created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
      updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
      CHECK (id = 1)
    )
    """,
    "INSERT OR IGNORE INTO ingest_checkpoint (id) VALUES (1)",
)

ACCOUNT_TABLE = (
    """
    CREATE TABLE IF NOT EXISTS account_profile (
      id INTEGER PRIMARY KEY DEFAULT 1,
      account_id TEXT NOT NULL,
      username TEXT NOT NULL,
      display_name TEXT NOT NULL,
      acct TEXT NOT NULL,
      avatar TEXT,
      created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
      updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
      CHECK (id = 1)
    )
    """,
)

# Archives created before account filtering lack the column; rows ingested
# back then get their author recovered from the stored payload.
ACCOUNT_COLUMN = "ALTER TABLE bookmarks ADD COLUMN account_id TEXT"
ACCOUNT_INDEX = "CREATE INDEX IF NOT EXISTS idx_account_id ON bookmarks(account_id)"
ACCOUNT_BACKFILL = """
    UPDATE bookmarks
    SET account_id = json_extract(raw_payload, '$.status.account.id')
    WHERE account_id IS NULL
      AND CASE WHEN json_valid(raw_payload)
               THEN json_extract(raw_payload, '$.status.account.id')
          END IS NOT NULL
"""


FTS_REBUILD = "INSERT INTO bookmarks_fts(bookmarks_fts) VALUES ('rebuild')"


def apply_migrations(db: SQLiteDatabase) -> None:
    """Create or upgrade the archive schema in a single transaction."""
    with db.transaction() as cursor:
        cursor.execute("BEGIN")
        fts_existed = _has_table(cursor, "bookmarks_fts")
        for statement in BOOKMARK_TABLES + CHECKPOINT_TABLE:
            cursor.execute(statement)
        if not _has_column(cursor, "bookmarks", "account_id"):
            logger.info("Adding account_id column to bookmarks")
            cursor.execute(ACCOUNT_COLUMN)
        cursor.execute(ACCOUNT_INDEX)
        for statement in ACCOUNT_TABLE:
            cursor.execute(statement)
        # Runs before the index triggers exist on a fresh index, so it never
        # deletes entries that were not indexed.
        cursor.execute(ACCOUNT_BACKFILL)
        for statement in FTS_TABLES:
            cursor.execute(statement)
        if not fts_existed:
            cursor.execute(FTS_REBUILD)


def _has_table(cursor: sqlite3.Cursor, name: str) -> bool:
    row = cursor.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = ?",
        [name],
    ).fetchone()
    return bool(row[0])


def _has_column(cursor: sqlite3.Cursor, table: str, column: str) -> bool:
    row = cursor.execute(
        "SELECT COUNT(*) FROM pragma_table_info(?) WHERE name = ?",
        [table, column],
    ).fetchone()
    return bool(row[0])


__all__ = ["apply_migrations"]
