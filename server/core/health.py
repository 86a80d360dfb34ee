"""Health check utilities.

Provides uptime tracking and the payload of the /health endpoint.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

import psutil

from constants import ContentCategory
from core.exceptions import SourceUnavailable

if TYPE_CHECKING:
    from core.config import Settings
    from core.cache import CacheService
    from services.content_source import ContentSource

HEALTH_CHECK_KEY = "_health_check"

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


def get_cpu_percent() -> float:
    """CPU usage of this process since the previous call."""
    try:
        return psutil.Process().cpu_percent(interval=None)
    except psutil.Error:
        return 0.0


async def check_cache(cache: "CacheService") -> bool:
    """Round-trip a key through the store."""
    stored = await cache.set(HEALTH_CHECK_KEY, "ok", ttl=10)
    if not stored.ok:
        return False
    result = await cache.get(HEALTH_CHECK_KEY)
    await cache.delete(HEALTH_CHECK_KEY)
    return result.hit and result.value == "ok"


async def check_source(source: "ContentSource") -> bool:
    """Source of truth answers a fingerprint query."""
    try:
        await source.category_fingerprint(ContentCategory.AGENTS.value)
        return True
    except SourceUnavailable:
        return False


async def get_health_status(
    cache: "CacheService",
    source: "ContentSource",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    The service stays "healthy" only when both the cache and the source
    answer; a cache outage alone degrades it, since reads fall back to the
    source.
    """
    cache_healthy = await check_cache(cache)
    source_healthy = await check_source(source)

    if cache_healthy and source_healthy:
        overall_status = "healthy"
    elif source_healthy:
        overall_status = "degraded"
    else:
        overall_status = "unhealthy"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "cpu_percent": round(get_cpu_percent(), 1),
        "checks": {
            "cache": cache_healthy,
            "source": source_healthy,
        },
        "cache": cache.get_stats(),
        "features": {
            "redis": settings.redis_enabled,
            "analytics": settings.analytics_enabled,
            "content_source": settings.content_source,
        },
    }
