"""Batched view-count retrieval for list pages."""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from constants import item_id, view_key
from core.cache import CacheService
from core.config import Settings
from core.exceptions import ValidationError
from core.logging import get_logger
from models.content import ContentKey, ContentMetadata

logger = get_logger(__name__)

ItemRef = Union[ContentKey, Tuple[str, str]]


def _as_pair(ref: Any) -> Tuple[str, str]:
    if isinstance(ref, ContentKey):
        return ref.category.value, ref.slug
    if isinstance(ref, dict):
        return str(ref.get("category", "")), str(ref.get("slug", ""))
    if hasattr(ref, "category") and hasattr(ref, "slug"):
        category = getattr(ref.category, "value", ref.category)
        return str(category), str(ref.slug)
    category, slug = ref
    return str(category), str(slug)


class ViewCountService:
    """Resolve many view counters in as few round trips as possible."""

    def __init__(self, cache: CacheService, settings: Settings):
        self.cache = cache
        self.settings = settings

    async def get_batch_view_counts(self, requests: Iterable[ItemRef]) -> Dict[str, Dict[str, int]]:
        """Map every requested ``"category:slug"`` to ``{"views": n}``.

        Duplicates collapse to one lookup; unknown or unreadable keys map to
        zero. Every requested id appears in the result, even when the store
        is down.
        """
        ids: List[str] = []
        counters: List[Optional[str]] = []
        seen = set()
        for ref in requests:
            category, slug = _as_pair(ref)
            ident = item_id(category, slug)
            try:
                key = ContentKey.parse(category, slug)
                counter = view_key(key.category.value, key.slug)
            except ValidationError:
                # Still answered, just never looked up
                counter = None
            if ident in seen:
                continue
            seen.add(ident)
            ids.append(ident)
            counters.append(counter)

        counts: Dict[str, Dict[str, int]] = {ident: {"views": 0} for ident in ids}
        lookups = [(ident, counter) for ident, counter in zip(ids, counters) if counter is not None]
        if not lookups:
            return counts

        chunk = self.settings.batch_chunk_size
        for start in range(0, len(lookups), chunk):
            await self._fill_chunk(lookups[start:start + chunk], counts)
        return counts

    async def _fill_chunk(self, lookups: Sequence[Tuple[str, str]], counts: Dict[str, Dict[str, int]]) -> None:
        result = await self.cache.mget([counter for _, counter in lookups])
        if not result.ok:
            logger.warning("Batch view counts unavailable", keys=len(lookups), error=str(result.error))
            return
        for (ident, counter), raw in zip(lookups, result.value):
            try:
                counts[ident]["views"] = int(raw or 0)
            except (TypeError, ValueError):
                logger.warning("Non-integer view counter", cache_key=counter)

    async def enrich_with_view_counts(self, items: List[ContentMetadata]) -> List[Dict[str, Any]]:
        """Attach ``view_count`` to each item, preserving order."""
        counts = await self.get_batch_view_counts((item.category.value, item.slug) for item in items)
        return [
            {**item.model_dump(mode="json"),
             "view_count": counts[item_id(item.category.value, item.slug)]["views"]}
            for item in items
        ]
