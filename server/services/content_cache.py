"""Read-through cache over content metadata and full content.

Key schema:
    content:{category}:list         -> JSON list of metadata (list views)
    content:{category}:meta:{slug}  -> JSON metadata of one item
    content:{category}:full:{slug}  -> JSON full content of one item

List pages only ever touch ``list``/``meta`` keys so they never pay for
full-content hydration. Cache errors are read around, never raised;
source failures (``SourceUnavailable``) propagate.
"""

from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from constants import (
    ContentCategory,
    content_category_pattern,
    content_full_key,
    content_list_key,
    content_meta_key,
)
from core.cache import CacheResult, CacheService
from core.config import Settings
from core.exceptions import ValidationError
from core.logging import get_logger
from models.content import ContentFull, ContentKey, ContentMetadata, has_full_payload, parse_category
from services.content_source import ContentSource

logger = get_logger(__name__)


class ContentCache:
    """Content Metadata Cache."""

    def __init__(self, cache: CacheService, source: ContentSource, settings: Settings):
        self.cache = cache
        self.source = source
        self.settings = settings

    # =========================================================================
    # Helpers
    # =========================================================================

    def _log_bypass(self, result: CacheResult, operation: str, category: str, slug: Optional[str] = None):
        logger.warning("Cache unavailable, reading source directly",
                       operation=operation, category=category, slug=slug, error=str(result.error))

    async def _populate(self, key: str, value: Any, ttl: int, operation: str) -> None:
        result = await self.cache.set(key, value, ttl)
        if not result.ok:
            logger.warning("Cache populate failed", operation=operation, cache_key=key,
                           error=str(result.error))

    @staticmethod
    def _to_metadata(records: Iterable[Dict[str, Any]], category: str) -> List[ContentMetadata]:
        items = []
        for record in records:
            try:
                key = ContentKey.parse(category, record.get("slug", ""))
                items.append(ContentMetadata.from_record({**record, "slug": key.slug}))
            except (ValidationError, PydanticValidationError) as e:
                logger.warning("Skipping invalid content record", category=category,
                               slug=record.get("slug"), error=str(e))
        return items

    @staticmethod
    def _parse_key(category: Union[str, ContentCategory], slug: str) -> Optional[ContentKey]:
        try:
            return ContentKey.parse(category, slug)
        except ValidationError as e:
            logger.debug("Rejected content key", category=str(category), slug=slug, error=e.message)
            return None

    # =========================================================================
    # Read-through operations
    # =========================================================================

    async def get_by_category(self, category: Union[str, ContentCategory]) -> List[ContentMetadata]:
        """All items of a category. An empty category yields ``[]``."""
        cat = parse_category(category).value
        key = content_list_key(cat)

        cached = await self.cache.get(key)
        if cached.hit:
            try:
                return [ContentMetadata.model_validate(item) for item in cached.value]
            except (PydanticValidationError, TypeError):
                logger.warning("Discarding stale cached list", category=cat)
        elif not cached.ok:
            self._log_bypass(cached, "get_by_category", cat)

        items = self._to_metadata(await self.source.list_category(cat), cat)
        if cached.ok:
            await self._populate(key, [i.model_dump(mode="json") for i in items],
                                 self.settings.content_list_ttl, "get_by_category")
        return items

    async def get_by_slug(self, category: Union[str, ContentCategory], slug: str) -> Optional[ContentMetadata]:
        """Metadata of one item, or ``None`` when it does not exist."""
        key = self._parse_key(category, slug)
        if key is None:
            return None
        cat = key.category.value
        cache_key = content_meta_key(cat, key.slug)

        cached = await self.cache.get(cache_key)
        if cached.hit:
            try:
                return ContentMetadata.model_validate(cached.value)
            except PydanticValidationError:
                logger.warning("Discarding stale cached metadata", category=cat, slug=key.slug)
        elif not cached.ok:
            self._log_bypass(cached, "get_by_slug", cat, key.slug)

        record = await self.source.get_item(cat, key.slug)
        if record is None:
            return None
        metadata = ContentMetadata.from_record({**record, "category": cat, "slug": key.slug})
        if cached.ok:
            await self._populate(cache_key, metadata.model_dump(mode="json"),
                                 self.settings.content_metadata_ttl, "get_by_slug")
        return metadata

    async def get_full_by_slug(self, category: Union[str, ContentCategory], slug: str) -> Optional[ContentFull]:
        """Full content of one item.

        When the source holds no heavy fields for the item, the metadata is
        returned as ``ContentFull(is_fallback=True)``.
        """
        key = self._parse_key(category, slug)
        if key is None:
            return None
        cat = key.category.value
        cache_key = content_full_key(cat, key.slug)

        cached = await self.cache.get(cache_key)
        if cached.hit:
            try:
                return ContentFull.model_validate(cached.value)
            except PydanticValidationError:
                logger.warning("Discarding stale cached full content", category=cat, slug=key.slug)
        elif not cached.ok:
            self._log_bypass(cached, "get_full_by_slug", cat, key.slug)

        record = await self.source.get_item(cat, key.slug)
        if record is None:
            return None
        record = {**record, "category": cat, "slug": key.slug}
        if has_full_payload(record):
            full = ContentFull.from_record(record)
        else:
            logger.info("Full content unavailable, serving metadata", category=cat, slug=key.slug)
            full = ContentFull.from_metadata(ContentMetadata.from_record(record))
        if cached.ok:
            await self._populate(cache_key, full.model_dump(mode="json"),
                                 self.settings.content_full_ttl, "get_full_by_slug")
        return full

    # =========================================================================
    # Invalidation & warming
    # =========================================================================

    async def invalidate_item(self, category: Union[str, ContentCategory], slug: str) -> CacheResult:
        """Drop one item's keys plus its category list."""
        key = ContentKey.parse(category, slug)
        cat = key.category.value
        return await self.cache.delete(
            content_meta_key(cat, key.slug),
            content_full_key(cat, key.slug),
            content_list_key(cat),
        )

    async def invalidate_category(self, category: Union[str, ContentCategory]) -> CacheResult:
        cat = parse_category(category).value
        return await self.cache.delete_pattern(content_category_pattern(cat))

    async def warm(self, categories: Optional[Iterable[Union[str, ContentCategory]]] = None) -> Dict[str, int]:
        """Pre-populate list and per-item metadata keys.

        Returns the number of items warmed per category.
        """
        warmed: Dict[str, int] = {}
        for category in categories or list(ContentCategory):
            cat = parse_category(category).value
            items = await self.get_by_category(cat)
            for item in items:
                await self._populate(content_meta_key(cat, item.slug), item.model_dump(mode="json"),
                                     self.settings.content_metadata_ttl, "warm")
            warmed[cat] = len(items)
        logger.info("Content cache warmed", categories=warmed)
        return warmed
