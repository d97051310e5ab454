"""Background thread hosting the ingestion pipeline."""

from __future__ import annotations

import threading

from bookmarchive.core.logging import get_logger
from bookmarchive.ingest.pipeline import IngestPipeline, RunOutcome

logger = get_logger(__name__)

JOIN_TIMEOUT_SECONDS = 5.0


class IngestWorker:
    """Own one daemon thread running ``IngestPipeline.run``."""

    def __init__(self, pipeline: IngestPipeline, join_timeout: float = JOIN_TIMEOUT_SECONDS) -> None:
        self.pipeline = pipeline
        self.join_timeout = join_timeout
        self.outcome: RunOutcome | None = None
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self.pipeline.stop_event.clear()
            self.outcome = None
            self._thread = threading.Thread(target=self._run, name="bookmarchive-ingest", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self.pipeline.stop()
            thread.join(timeout=self.join_timeout)
            if thread.is_alive():
                logger.warning("Ingest worker did not stop within %.1fs", self.join_timeout)
            self._thread = None

    def _run(self) -> None:
        try:
            self.outcome = self.pipeline.run()
        except Exception as exc:
            logger.exception("Ingest worker crashed: %s", exc)
            self.outcome = RunOutcome.FAILED
        logger.info("Ingest worker finished", extra={"ctx_outcome": self.outcome.value})


__all__ = ["IngestWorker", "JOIN_TIMEOUT_SECONDS"]
