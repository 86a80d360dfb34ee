"""View/copy counters and trending aggregation.

Keys:
    views:{category}:{slug}                  all-time view counter (INCR)
    views:daily:{category}:{slug}:{day}      daily view counter, expires
    copies:{category}:{slug}                 all-time copy counter
    trending:{category}:{day}                sorted set, views per slug that day
    popular:{category}:all                   sorted set, all-time views
    copied:{category}:all                    sorted set, all-time copies

Trending score of a slug is the sum over the last ``trending_window_days``
day buckets of ``views * 0.5 ** (age_days / trending_half_life_days)``.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from constants import (
    ContentCategory,
    copied_key,
    copy_key,
    daily_view_key,
    daily_view_pattern,
    item_id,
    popular_key,
    trending_key,
    trending_pattern,
    view_key,
)
from core.cache import CacheResult, CacheService
from core.config import Settings
from core.logging import get_logger
from models.content import ContentKey, parse_category

logger = get_logger(__name__)

DAY_SECONDS = 86400


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatsService:
    """View/Copy Counter Service."""

    def __init__(self, cache: CacheService, settings: Settings,
                 clock: Callable[[], datetime] = utcnow):
        self.cache = cache
        self.settings = settings
        self._clock = clock

    def is_enabled(self) -> bool:
        """Tracking is on and the store is currently usable."""
        return self.settings.analytics_enabled and self.cache.is_enabled()

    def _today(self) -> date:
        return self._clock().date()

    def _clamp_limit(self, limit: int) -> int:
        return max(1, min(int(limit), self.settings.trending_max_limit))

    @staticmethod
    def _secondary(result: CacheResult, operation: str, key: str) -> None:
        # Aggregates are best effort; the primary counter already succeeded
        if not result.ok:
            logger.warning("Secondary counter update failed", operation=operation,
                           cache_key=key, error=str(result.error))

    @staticmethod
    def _ranked(scores: Dict[str, float], limit: int) -> List[Tuple[str, float]]:
        return sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]

    # =========================================================================
    # Counters
    # =========================================================================

    async def increment_view(self, category: Union[str, ContentCategory], slug: str) -> Optional[int]:
        """Count one view. Returns the new all-time count, or ``None``.

        Raises ``ValidationError`` for an unknown category or malformed slug.
        """
        key = ContentKey.parse(category, slug)
        if not self.is_enabled():
            return None
        cat, item = key.category.value, key.slug

        counter = view_key(cat, item)
        result = await self.cache.incr(counter)
        if not result.ok:
            logger.warning("View increment failed", category=cat, slug=item, error=str(result.error))
            return None

        today = self._today()
        daily = daily_view_key(cat, item, today)
        self._secondary(await self.cache.incr(daily, ttl=self.settings.daily_views_ttl), "incr", daily)

        bucket = trending_key(cat, today)
        bumped = await self.cache.zincrby(bucket, 1, item)
        self._secondary(bumped, "zincrby", bucket)
        if bumped.ok:
            ttl = (self.settings.trending_window_days + 1) * DAY_SECONDS
            self._secondary(await self.cache.expire(bucket, ttl), "expire", bucket)

        self._secondary(await self.cache.zincrby(popular_key(cat), 1, item), "zincrby", popular_key(cat))
        return int(result.value)

    async def track_copy(self, category: Union[str, ContentCategory], slug: str) -> Optional[int]:
        """Count one copy action. Returns the new all-time copy count, or ``None``."""
        key = ContentKey.parse(category, slug)
        if not self.is_enabled():
            return None
        cat, item = key.category.value, key.slug

        result = await self.cache.incr(copy_key(cat, item))
        if not result.ok:
            logger.warning("Copy increment failed", category=cat, slug=item, error=str(result.error))
            return None
        self._secondary(await self.cache.zincrby(copied_key(cat), 1, item), "zincrby", copied_key(cat))
        return int(result.value)

    async def _read_counter(self, counter: str) -> int:
        result = await self.cache.mget([counter])
        if not result.ok:
            return 0
        try:
            return int(result.value[0] or 0)
        except (TypeError, ValueError):
            return 0

    async def get_view_count(self, category: Union[str, ContentCategory], slug: str) -> int:
        key = ContentKey.parse(category, slug)
        return await self._read_counter(view_key(key.category.value, key.slug))

    async def get_copy_count(self, category: Union[str, ContentCategory], slug: str) -> int:
        key = ContentKey.parse(category, slug)
        return await self._read_counter(copy_key(key.category.value, key.slug))

    async def get_daily_view_counts(self, items: Iterable[Tuple[str, str]],
                                    day: Optional[date] = None) -> Dict[str, int]:
        """Views on ``day`` (default today) keyed by ``"category:slug"``."""
        day = day or self._today()
        keys = [ContentKey.parse(category, slug) for category, slug in items]
        counts = {k.cache_id: 0 for k in keys}
        if not keys:
            return counts

        result = await self.cache.mget([daily_view_key(k.category.value, k.slug, day) for k in keys])
        if not result.ok:
            logger.warning("Daily view counts unavailable", error=str(result.error))
            return counts
        for k, raw in zip(keys, result.value):
            try:
                counts[k.cache_id] = int(raw or 0)
            except (TypeError, ValueError):
                pass
        return counts

    # =========================================================================
    # Rankings
    # =========================================================================

    async def get_trending_with_scores(self, category: Union[str, ContentCategory],
                                       limit: int = 10) -> List[Tuple[str, float]]:
        """Decayed sliding-window ranking, highest score first, ties by slug."""
        cat = parse_category(category).value
        limit = self._clamp_limit(limit)
        today = self._today()
        half_life = self.settings.trending_half_life_days

        scores: Dict[str, float] = {}
        for age in range(self.settings.trending_window_days):
            bucket = trending_key(cat, today - timedelta(days=age))
            result = await self.cache.zrange_with_scores(bucket)
            if not result.ok:
                logger.warning("Trending unavailable", category=cat, error=str(result.error))
                return []
            weight = 0.5 ** (age / half_life)
            for slug, views in result.value:
                scores[slug] = scores.get(slug, 0.0) + views * weight

        return self._ranked(scores, limit)

    async def get_trending(self, category: Union[str, ContentCategory], limit: int = 10) -> List[str]:
        return [slug for slug, _ in await self.get_trending_with_scores(category, limit)]

    async def get_popular(self, category: Union[str, ContentCategory], limit: int = 10) -> List[Tuple[str, float]]:
        """All-time most viewed."""
        cat = parse_category(category).value
        result = await self.cache.zrange_with_scores(popular_key(cat))
        if not result.ok:
            logger.warning("Popular unavailable", category=cat, error=str(result.error))
            return []
        return self._ranked(dict(result.value), self._clamp_limit(limit))

    # =========================================================================
    # Maintenance
    # =========================================================================

    def _bucket_day(self, key: str) -> Optional[date]:
        try:
            return date.fromisoformat(key.rsplit(":", 1)[-1])
        except ValueError:
            return None

    async def cleanup_old_trending(self) -> int:
        """Delete day buckets that fell out of the window. Returns keys removed."""
        cutoff = self._today() - timedelta(days=self.settings.trending_window_days)
        removed = 0
        for category in ContentCategory:
            listed = await self.cache.scan_keys(trending_pattern(category.value))
            if not listed.ok:
                logger.warning("Trending cleanup skipped", category=category.value,
                               error=str(listed.error))
                continue
            stale = [k for k in listed.value if (d := self._bucket_day(k)) is not None and d < cutoff]
            if not stale:
                continue
            deleted = await self.cache.delete(*stale)
            if deleted.ok:
                removed += deleted.value
        logger.info("Trending cleanup completed", keys_removed=removed, cutoff=cutoff.isoformat())
        return removed

    async def purge_item(self, category: Union[str, ContentCategory], slug: str) -> bool:
        """Remove every counter and ranking entry of a deleted item."""
        key = ContentKey.parse(category, slug)
        cat, item = key.category.value, key.slug

        results = [
            await self.cache.delete(view_key(cat, item), copy_key(cat, item)),
            await self.cache.delete_pattern(daily_view_pattern(cat, item)),
            await self.cache.zrem(popular_key(cat), item),
            await self.cache.zrem(copied_key(cat), item),
        ]
        buckets = await self.cache.scan_keys(trending_pattern(cat))
        results.append(buckets)
        if buckets.ok:
            for bucket in buckets.value:
                results.append(await self.cache.zrem(bucket, item))

        ok = all(r.ok for r in results)
        if ok:
            logger.info("Purged item counters", item=item_id(cat, item))
        else:
            logger.warning("Partial counter purge", item=item_id(cat, item))
        return ok
