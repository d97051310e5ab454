"""Server-Sent Events stream of ingestion progress."""

from __future__ import annotations

import queue
import time
from typing import Any, AsyncIterator

import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from bookmarchive.api.dependencies import get_broadcaster, get_store
from bookmarchive.core.errors import StoreError
from bookmarchive.core.events import EventBroadcaster
from bookmarchive.core.logging import get_logger
from bookmarchive.db.store import BookmarkStore

logger = get_logger(__name__)

router = APIRouter()

HEARTBEAT_SECONDS = 30.0
QUEUE_POLL_SECONDS = 1.0
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(data: dict[str, Any]) -> bytes:
    return b"data: " + orjson.dumps(data) + b"\n\n"


@router.get("/events", summary="Stream ingestion events")
async def stream_events(
    request: Request,
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    store: BookmarkStore = Depends(get_store),
) -> StreamingResponse:
    async def event_stream() -> AsyncIterator[bytes]:
        subscription = broadcaster.subscribe()
        try:
            yield format_sse({"type": "connected"})
            try:
                total = await run_in_threadpool(store.count)
            except StoreError as exc:
                logger.debug("Skipping initial stats frame: %s", exc)
            else:
                yield format_sse({"type": "stats", "payload": {"total_bookmarks": total}})

            last_heartbeat = time.monotonic()
            while not await request.is_disconnected():
                try:
                    event = await run_in_threadpool(subscription.get, True, QUEUE_POLL_SECONDS)
                except queue.Empty:
                    pass
                else:
                    if event is None:
                        break
                    yield format_sse(event.to_dict())
                if time.monotonic() - last_heartbeat >= HEARTBEAT_SECONDS:
                    yield format_sse({"type": "heartbeat"})
                    last_heartbeat = time.monotonic()
        finally:
            broadcaster.unsubscribe(subscription)

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


__all__ = ["router", "format_sse"]
