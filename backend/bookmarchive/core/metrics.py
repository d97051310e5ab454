"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

BOOKMARKS_INGESTED = Counter(
    "bma_bookmarks_ingested_total",
    "Bookmarks seen by batch processing",
    labelnames=("outcome",),
    registry=REGISTRY,
)

FETCH_REQUESTS = Counter(
    "bma_fetch_requests_total",
    "Remote bookmark page requests",
    labelnames=("status",),
    registry=REGISTRY,
)

FETCH_LATENCY = Histogram(
    "bma_fetch_latency_seconds",
    "Latency of remote bookmark page requests",
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "bma_search_latency_seconds",
    "Latency of archive searches",
    labelnames=("mode",),
    registry=REGISTRY,
)

ARCHIVE_SIZE = Gauge(
    "bma_archive_bookmarks",
    "Number of bookmarks stored in the archive",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "BOOKMARKS_INGESTED",
    "FETCH_REQUESTS",
    "FETCH_LATENCY",
    "SEARCH_LATENCY",
    "ARCHIVE_SIZE",
    "metrics_response",
]
