"""Content read routes backed by the read-through cache."""

from fastapi import APIRouter, Depends, HTTPException, Query

from core.container import container
from core.exceptions import SourceUnavailable, ValidationError
from core.logging import get_logger
from services.content_cache import ContentCache
from services.view_counts import ViewCountService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/content", tags=["content"])


@router.get("/{category}")
async def list_content(
    category: str,
    with_views: bool = Query(default=False),
    content_cache: ContentCache = Depends(lambda: container.content_cache()),
    view_counts: ViewCountService = Depends(lambda: container.view_count_service())
):
    """Metadata of every item in a category."""
    try:
        items = await content_cache.get_by_category(category)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except SourceUnavailable as e:
        logger.error("Content source unavailable", category=category, error=str(e))
        raise HTTPException(status_code=503, detail="Content source unavailable")

    if with_views:
        payload = await view_counts.enrich_with_view_counts(items)
    else:
        payload = [item.model_dump(mode="json") for item in items]
    return {"category": category, "count": len(payload), "items": payload}


@router.get("/{category}/{slug:path}")
async def get_content(
    category: str,
    slug: str,
    full: bool = Query(default=False),
    content_cache: ContentCache = Depends(lambda: container.content_cache())
):
    """One item; ``?full=true`` includes the heavy fields."""
    try:
        if full:
            item = await content_cache.get_full_by_slug(category, slug)
        else:
            item = await content_cache.get_by_slug(category, slug)
    except SourceUnavailable as e:
        logger.error("Content source unavailable", category=category, slug=slug, error=str(e))
        raise HTTPException(status_code=503, detail="Content source unavailable")

    if item is None:
        raise HTTPException(status_code=404, detail=f"Content not found: {category}/{slug}")
    return item.model_dump(mode="json")
