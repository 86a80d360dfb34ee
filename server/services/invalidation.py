"""Build-complete cache invalidation.

The build pipeline calls ``on_build_complete`` after regenerating content.
Per-category fingerprints of the source are compared with the manifest
left by the previous run; only changed categories are purged. The
manifest is advanced only for categories whose purge succeeded, so a
build that ran while the cache was unreachable is retried next time.
"""

import asyncio
import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from constants import ContentCategory
from core.config import Settings
from core.exceptions import SourceUnavailable
from core.logging import get_logger, log_execution_time
from models.analytics import InvalidationReport
from models.content import parse_category
from services.content_cache import ContentCache
from services.stats import StatsService

logger = get_logger(__name__)

MANIFEST_VERSION = 1


class CacheInvalidator:
    """Cache Invalidation Hook."""

    def __init__(self, content_cache: ContentCache, stats: StatsService, settings: Settings):
        self.content_cache = content_cache
        self.stats = stats
        self.settings = settings
        self.manifest_path = Path(settings.build_manifest_path)
        self._lock = asyncio.Lock()

    # =========================================================================
    # Manifest
    # =========================================================================

    def _read_manifest(self) -> Dict[str, str]:
        if not self.manifest_path.is_file():
            return {}
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable build manifest", path=str(self.manifest_path), error=str(e))
            return {}
        categories = data.get("categories") if isinstance(data, dict) else None
        return dict(categories) if isinstance(categories, dict) else {}

    def _write_manifest(self, fingerprints: Dict[str, str]) -> None:
        payload = {
            "version": MANIFEST_VERSION,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "categories": dict(sorted(fingerprints.items())),
        }
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.manifest_path.with_suffix(self.manifest_path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.manifest_path)

    async def _fingerprint(self, category: str) -> Optional[str]:
        try:
            return await self.content_cache.source.category_fingerprint(category)
        except SourceUnavailable as e:
            logger.warning("Fingerprint unavailable, treating category as changed",
                           category=category, error=str(e))
            return None

    # =========================================================================
    # Hooks
    # =========================================================================

    async def on_build_complete(
        self, changed_categories: Optional[Iterable[Union[str, ContentCategory]]] = None
    ) -> InvalidationReport:
        """Purge cached content of every category that changed since the last build.

        With an explicit ``changed_categories`` list exactly those categories
        are purged. Cache failures end up in ``report.failed``; nothing is
        raised for them.
        """
        start = time.perf_counter()
        explicit = changed_categories is not None
        if explicit:
            categories = list(dict.fromkeys(parse_category(c).value for c in changed_categories))
        else:
            categories = [c.value for c in ContentCategory]

        async with self._lock:
            manifest = await asyncio.to_thread(self._read_manifest)
            current: Dict[str, Optional[str]] = {c: await self._fingerprint(c) for c in categories}

            if explicit:
                changed = categories
            else:
                changed = [c for c in categories if current[c] is None or current[c] != manifest.get(c)]

            report = InvalidationReport(changed=changed)
            advanced = dict(manifest)
            for category in changed:
                result = await self.content_cache.invalidate_category(category)
                if not result.ok:
                    logger.warning("Category invalidation failed", category=category, error=str(result.error))
                    report.failed.append(category)
                    continue
                report.invalidated.append(category)
                report.keys_deleted += int(result.value or 0)
                if current[category] is not None:
                    advanced[category] = current[category]

            if not explicit:
                # Unchanged categories still record their fingerprint on first run
                for category in categories:
                    if category not in changed and current[category] is not None:
                        advanced[category] = current[category]

            if advanced != manifest:
                try:
                    await asyncio.to_thread(self._write_manifest, advanced)
                except OSError as e:
                    logger.error("Failed to write build manifest", path=str(self.manifest_path), error=str(e))

        report.fingerprints = {c: fp for c, fp in advanced.items() if c in categories}
        end = time.perf_counter()
        report.duration_ms = round((end - start) * 1000, 2)
        log_execution_time(logger, "on_build_complete", start, end,
                           changed=report.changed, invalidated=report.invalidated,
                           failed=report.failed, keys_deleted=report.keys_deleted)
        return report

    async def on_content_deleted(self, category: Union[str, ContentCategory], slug: str) -> bool:
        """Drop a deleted item's cache keys and purge its counters."""
        result = await self.content_cache.invalidate_item(category, slug)
        if not result.ok:
            logger.warning("Item invalidation failed", category=str(category), slug=slug,
                           error=str(result.error))
        purged = await self.stats.purge_item(category, slug)
        return result.ok and purged

    async def changed_since_last_build(self) -> List[str]:
        """Categories whose fingerprint differs from the manifest, without purging."""
        manifest = await asyncio.to_thread(self._read_manifest)
        changed = []
        for category in ContentCategory:
            fingerprint = await self._fingerprint(category.value)
            if fingerprint is None or fingerprint != manifest.get(category.value):
                changed.append(category.value)
        return changed
