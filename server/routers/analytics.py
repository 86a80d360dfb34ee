"""View/copy tracking and ranking routes."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from core.container import container
from core.exceptions import ValidationError
from core.logging import get_logger
from models.analytics import PopularItem, TrackResult, TrendingResponse, ViewCountRequest
from services import tracking
from services.stats import StatsService
from services.view_counts import ViewCountService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _track_response(result: TrackResult) -> Dict[str, Any]:
    return result.model_dump(by_alias=True, exclude_none=True)


@router.post("/track-view")
async def track_view(
    request: Dict[str, Any],
    stats: StatsService = Depends(lambda: container.stats_service())
):
    """Count a page view. Always 200; failures are reported in the body."""
    result = await tracking.track_view(stats, request.get("category"), request.get("slug"))
    return _track_response(result)


@router.post("/track-copy")
async def track_copy(
    request: Dict[str, Any],
    stats: StatsService = Depends(lambda: container.stats_service())
):
    """Count a copy-to-clipboard action."""
    result = await tracking.track_copy(stats, request.get("category"), request.get("slug"))
    return _track_response(result)


@router.post("/view-counts")
async def get_view_counts(
    request: ViewCountRequest,
    view_counts: ViewCountService = Depends(lambda: container.view_count_service())
):
    """Batch view counts keyed by "category:slug"."""
    return await view_counts.get_batch_view_counts(request.items)


@router.get("/trending/{category}", response_model=TrendingResponse)
async def get_trending(
    category: str,
    limit: int = Query(default=10),
    stats: StatsService = Depends(lambda: container.stats_service())
):
    try:
        slugs = await stats.get_trending(category, limit)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return TrendingResponse(category=category, slugs=slugs)


@router.get("/popular/{category}")
async def get_popular(
    category: str,
    limit: int = Query(default=10),
    stats: StatsService = Depends(lambda: container.stats_service())
):
    """All-time most viewed items with their view totals."""
    try:
        ranked = await stats.get_popular(category, limit)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {
        "category": category,
        "items": [PopularItem(slug=slug, score=score).model_dump() for slug, score in ranked],
    }


@router.get("/counts/{category}/{slug:path}")
async def get_counts(
    category: str,
    slug: str,
    stats: StatsService = Depends(lambda: container.stats_service())
):
    """View and copy totals of a single item."""
    try:
        views = await stats.get_view_count(category, slug)
        copies = await stats.get_copy_count(category, slug)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"category": category, "slug": slug, "views": views, "copies": copies}
