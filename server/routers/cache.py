"""Cache maintenance routes used by the build pipeline and operators."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from core.cache import CacheService
from core.container import container
from core.exceptions import ValidationError
from core.logging import get_logger
from models.analytics import InvalidateRequest
from services.content_cache import ContentCache
from services.invalidation import CacheInvalidator

logger = get_logger(__name__)
router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.post("/invalidate")
async def invalidate(
    request: Optional[InvalidateRequest] = Body(default=None),
    invalidator: CacheInvalidator = Depends(lambda: container.invalidator())
):
    """Build-complete hook. Without categories, changed ones are detected."""
    categories = request.categories if request else None
    try:
        report = await invalidator.on_build_complete(categories)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return report.model_dump()


@router.delete("/items/{category}/{slug:path}")
async def delete_item(
    category: str,
    slug: str,
    invalidator: CacheInvalidator = Depends(lambda: container.invalidator())
):
    """Content was deleted upstream: drop its cache keys and counters."""
    try:
        purged = await invalidator.on_content_deleted(category, slug)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"success": purged}


@router.post("/warm")
async def warm(
    request: Optional[InvalidateRequest] = Body(default=None),
    content_cache: ContentCache = Depends(lambda: container.content_cache())
):
    """Pre-load category lists and item metadata."""
    try:
        warmed = await content_cache.warm(request.categories if request else None)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"success": True, "warmed": warmed}


@router.get("/stats")
async def cache_stats(cache: CacheService = Depends(lambda: container.cache())):
    return cache.get_stats()
