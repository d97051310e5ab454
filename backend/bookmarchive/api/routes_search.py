"""Search API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from bookmarchive.api.dependencies import get_query_service
from bookmarchive.core.errors import QueryError, StoreError
from bookmarchive.core.logging import get_logger
from bookmarchive.models.dto import SearchRequest, SearchResultResponse, StatsResponse
from bookmarchive.retrieval.search import QueryService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/search", response_model=list[SearchResultResponse], summary="Search archived bookmarks")
def search_bookmarks(
    request: SearchRequest,
    service: QueryService = Depends(get_query_service),
) -> list[SearchResultResponse]:
    """Ranked full-text search, or the most recent bookmarks for an empty query."""
    try:
        results = service.search_or_recent(request)
    except QueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreError as exc:
        logger.error("Search failed: %s", exc, extra={"ctx_query": request.query})
        raise HTTPException(status_code=500, detail="Search failed") from exc
    return [SearchResultResponse.from_result(result) for result in results]


@router.get("/stats", response_model=StatsResponse, summary="Archive statistics")
def get_stats(service: QueryService = Depends(get_query_service)) -> StatsResponse:
    try:
        return service.stats()
    except StoreError as exc:
        logger.error("Failed to get stats: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to get stats") from exc


__all__ = ["router"]
