"""Ingest pipeline orchestration: resumable backfill followed by polling."""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Sequence

from bookmarchive.core.config import Settings
from bookmarchive.core.errors import BookmarchiveError, Cancelled, StoreError
from bookmarchive.core.events import EventPublisher, ServerEvent
from bookmarchive.core.logging import get_logger
from bookmarchive.core.metrics import ARCHIVE_SIZE, BOOKMARKS_INGESTED
from bookmarchive.db.store import BookmarkStore
from bookmarchive.ingest.client import BookmarkSource, MastodonClient
from bookmarchive.ingest.normalize import normalize, strip_html
from bookmarchive.ingest.types import Bookmark, IngestStats
from bookmarchive.utils.text import preview
from bookmarchive.utils.time import utc_now

logger = get_logger(__name__)

CONTENT_PREVIEW_LENGTH = 100


class PipelineState(str, Enum):
    BACKFILLING = "backfilling"
    POLLING = "polling"
    STOPPED = "stopped"


class RunOutcome(str, Enum):
    CANCELLED = "cancelled"
    FAILED = "failed"


class IngestPipeline:
    """Drive backfill then polling against a bookmark source.

    Every blocking point (rate limiter, retry backoff, inter-batch delay and
    the poll timer) waits on ``stop_event``; setting it makes the active loop
    raise ``Cancelled`` at its next wait.
    """

    def __init__(
        self,
        store: BookmarkStore,
        source: BookmarkSource,
        settings: Settings,
        events: EventPublisher | None = None,
        stop_event: threading.Event | None = None,
        client: MastodonClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.source = source
        self.settings = settings
        self.events = events
        self.stop_event = stop_event or threading.Event()
        self.client = client
        self.clock = clock
        self.state = PipelineState.STOPPED

    def stop(self) -> None:
        """Request cancellation and drop the client's connections so a blocked request returns."""
        self.stop_event.set()
        if self.client is not None:
            self.client.close()

    def run(self) -> RunOutcome:
        """Run until stopped or until backfill fails; never raises."""
        try:
            if self.client is not None:
                self.refresh_profile(self.client)
            self.run_backfill()
            self.run_polling()
        except Cancelled:
            logger.info("Ingestion stopped")
            return RunOutcome.CANCELLED
        except BookmarchiveError as exc:
            if self.stop_event.is_set():
                logger.info("Ingestion stopped: %s", exc)
                return RunOutcome.CANCELLED
            logger.error("Ingestion aborted: %s", exc)
            return RunOutcome.FAILED
        finally:
            self.state = PipelineState.STOPPED
        return RunOutcome.CANCELLED  # pragma: no cover - polling only exits by raising

    def refresh_profile(self, client: MastodonClient) -> None:
        """Cache the authenticated account; a failed store write is only a warning."""
        profile = client.verify_credentials(self.stop_event)
        self._check_cancelled()
        try:
            self.store.upsert_account_profile(profile)
        except StoreError as exc:
            logger.warning("Failed to store account profile: %s", exc)
            return
        logger.info(
            "Stored account profile",
            extra={"ctx_account_id": profile.account_id, "ctx_username": profile.username},
        )

    # Backfill ---------------------------------------------------------

    def run_backfill(self) -> int:
        """Walk the bookmark history from the saved cursor; return records fetched."""
        checkpoint = self.store.get_checkpoint()
        if checkpoint.complete:
            logger.info("Backfill already complete, skipping")
            return 0

        self.state = PipelineState.BACKFILLING
        cursor = checkpoint.cursor
        last_poll_at = checkpoint.last_poll_at
        if cursor:
            logger.info("Resuming backfill", extra={"ctx_cursor": cursor})
        else:
            logger.info("Starting backfill from the beginning")

        total = 0
        delay = self.settings.backfill_delay.total_seconds()
        while True:
            self._check_cancelled()
            logger.debug(
                "Fetching bookmark batch",
                extra={"ctx_cursor": cursor, "ctx_batch_size": self.settings.batch_size},
            )
            bookmarks, next_cursor = self.source.fetch_page(self.stop_event, self.settings.batch_size, cursor)
            self._check_cancelled()

            if not bookmarks:
                logger.info("Backfill reached the end of history", extra={"ctx_total_processed": total})
                self.store.update_checkpoint("", True, last_poll_at)
                break

            self.process_batch(bookmarks)
            total += len(bookmarks)

            if not next_cursor:
                self.store.update_checkpoint("", True, last_poll_at)
                break

            self.store.update_checkpoint(next_cursor, False, last_poll_at)
            cursor = next_cursor
            logger.info(
                "Processed backfill batch",
                extra={"ctx_count": len(bookmarks), "ctx_total_so_far": total},
            )
            if self.stop_event.wait(delay):
                raise Cancelled("backfill delay cancelled")

        self._publish("backfill_complete", {"total_processed": total})
        logger.info("Backfill completed", extra={"ctx_total_processed": total})
        return total

    # Polling ----------------------------------------------------------

    def run_polling(self) -> None:
        """Poll the newest page on a fixed schedule until cancelled."""
        self.state = PipelineState.POLLING
        interval = self.settings.poll_interval.total_seconds()
        logger.info("Starting bookmark polling", extra={"ctx_interval_seconds": interval})
        next_tick = self.clock() + interval
        while True:
            if self.stop_event.wait(max(0.0, next_tick - self.clock())):
                raise Cancelled("polling stopped")
            next_tick += interval
            now = self.clock()
            if next_tick <= now:
                # Missed ticks are dropped rather than replayed.
                next_tick = now + interval
            try:
                self.poll_once()
            except Cancelled:
                raise
            except Exception as exc:
                logger.error("Bookmark poll failed: %s", exc)

    def poll_once(self) -> IngestStats:
        """Fetch the first page and record the poll time; the cursor is left alone."""
        checkpoint = self.store.get_checkpoint()
        bookmarks, _ = self.source.fetch_page(self.stop_event, self.settings.batch_size, "")
        self._check_cancelled()
        stats = IngestStats()
        if bookmarks:
            logger.info("Found bookmarks to check", extra={"ctx_count": len(bookmarks)})
            stats = self.process_batch(bookmarks)
        else:
            logger.debug("No bookmarks returned by poll")
        poll_time = utc_now()
        self.store.update_checkpoint(checkpoint.cursor, checkpoint.complete, poll_time)
        logger.info("Bookmark poll completed", extra={"ctx_processed": stats.processed})
        return stats

    # Batches ----------------------------------------------------------

    def process_batch(self, bookmarks: Sequence[Bookmark]) -> IngestStats:
        """Insert unseen bookmarks in order; per-item failures are logged and skipped."""
        stats = IngestStats()
        total = len(bookmarks)
        self._publish("batch_start", {"total_bookmarks": total})

        for index, bookmark in enumerate(bookmarks, start=1):
            self._check_cancelled()
            status_id = bookmark.status.id
            try:
                if self.store.exists(status_id):
                    logger.debug("Bookmark already archived", extra={"ctx_status_id": status_id})
                    stats.skipped += 1
                    BOOKMARKS_INGESTED.labels(outcome="skipped").inc()
                    continue
                record = normalize(bookmark, self.settings.indexed_fields)
                self.store.insert_or_replace(record)
            except Exception as exc:
                logger.error(
                    "Failed to archive bookmark: %s",
                    exc,
                    extra={"ctx_status_id": status_id, "ctx_index": index},
                )
                stats.failed += 1
                BOOKMARKS_INGESTED.labels(outcome="failed").inc()
                continue

            stats.processed += 1
            BOOKMARKS_INGESTED.labels(outcome="inserted").inc()
            self._publish(
                "bookmark_processed",
                {
                    "bookmark_id": bookmark.id,
                    "status_id": status_id,
                    "username": bookmark.status.account.username,
                    "content_preview": preview(strip_html(bookmark.status.content), CONTENT_PREVIEW_LENGTH),
                    "processed_count": stats.processed,
                    "total_count": total,
                },
            )

        self._publish(
            "batch_complete",
            {"processed": stats.processed, "total": total, "skipped": total - stats.processed},
        )
        self._update_archive_size()
        logger.info(
            "Bookmark batch processed",
            extra={
                "ctx_processed": stats.processed,
                "ctx_total": total,
                "ctx_skipped": stats.skipped,
                "ctx_failed": stats.failed,
            },
        )
        return stats

    # ------------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.stop_event.is_set():
            raise Cancelled("ingestion cancelled")

    def _publish(self, event_type: str, payload: dict) -> None:
        if self.events is None:
            return
        try:
            self.events.publish(ServerEvent(type=event_type, payload=payload))
        except Exception as exc:  # pragma: no cover - publishers do not raise
            logger.debug("Dropping %s event: %s", event_type, exc)

    def _update_archive_size(self) -> None:
        try:
            ARCHIVE_SIZE.set(self.store.count())
        except StoreError as exc:
            logger.debug("Could not refresh archive size: %s", exc)


__all__ = ["IngestPipeline", "PipelineState", "RunOutcome", "CONTENT_PREVIEW_LENGTH"]
