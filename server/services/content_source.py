"""Source-of-truth content stores.

Two interchangeable implementations of ``ContentSource``:

- ``FileContentSource`` reads ``{content_dir}/{category}/*.json``, the
  layout produced by the content generation pipeline.
- ``DatabaseContentSource`` reads the ``content_items`` table.

Both return plain dict records. A missing item is ``None``; an
unreachable store raises ``SourceUnavailable``.
"""

import asyncio
import hashlib
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from core.database import Database
from core.exceptions import SourceUnavailable
from core.logging import get_logger

logger = get_logger(__name__)


class ContentSource(Protocol):
    """Read interface of the authoritative content store."""

    async def list_category(self, category: str) -> List[Dict[str, Any]]: ...

    async def get_item(self, category: str, slug: str) -> Optional[Dict[str, Any]]: ...

    async def category_fingerprint(self, category: str) -> str: ...


class FileContentSource:
    """JSON files on disk, one file per item."""

    def __init__(self, content_dir: str):
        self.content_dir = Path(content_dir)

    def _category_dir(self, category: str) -> Path:
        return self.content_dir / category

    def _json_files(self, category: str) -> List[Path]:
        directory = self._category_dir(category)
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.glob("*.json")
            if "template" not in p.name
        )

    @staticmethod
    def _load(path: Path, category: str) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Skipping malformed content file", path=str(path), error=str(e))
            return None
        if not isinstance(data, dict):
            logger.warning("Skipping non-object content file", path=str(path))
            return None
        data["slug"] = str(data.get("slug") or path.stem).strip().lower()
        data["category"] = category
        return data

    def _read_category(self, category: str) -> List[Dict[str, Any]]:
        try:
            records = [self._load(path, category) for path in self._json_files(category)]
        except OSError as e:
            raise SourceUnavailable(f"Failed to read {category} content: {e}") from e
        return [r for r in records if r is not None]

    def _read_item(self, category: str, slug: str) -> Optional[Dict[str, Any]]:
        directory = self._category_dir(category)
        try:
            path = (directory / f"{slug}.json").resolve()
            if not path.is_relative_to(directory.resolve()):
                logger.warning("Rejecting slug outside the content directory", category=category, slug=slug)
                return None
            if path.is_file():
                record = self._load(path, category)
                if record is not None and record["slug"] == slug:
                    return record
            # Slug may differ from the file name
            for record in self._read_category(category):
                if record["slug"] == slug:
                    return record
        except OSError as e:
            raise SourceUnavailable(f"Failed to read {category}/{slug}: {e}") from e
        return None

    def _fingerprint(self, category: str) -> str:
        digest = hashlib.sha256()
        try:
            for path in self._json_files(category):
                digest.update(path.name.encode("utf-8"))
                digest.update(hashlib.sha256(path.read_bytes()).digest())
        except OSError as e:
            raise SourceUnavailable(f"Failed to hash {category} content: {e}") from e
        return digest.hexdigest()

    async def list_category(self, category: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._read_category, category)

    async def get_item(self, category: str, slug: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read_item, category, slug)

    async def category_fingerprint(self, category: str) -> str:
        return await asyncio.to_thread(self._fingerprint, category)


class DatabaseContentSource:
    """Relational store via the shared ``Database`` service."""

    def __init__(self, database: Database):
        self.database = database

    async def list_category(self, category: str) -> List[Dict[str, Any]]:
        return [row.to_record() for row in await self.database.list_content(category)]

    async def get_item(self, category: str, slug: str) -> Optional[Dict[str, Any]]:
        row = await self.database.get_content(category, slug)
        return row.to_record() if row else None

    async def category_fingerprint(self, category: str) -> str:
        digest = hashlib.sha256()
        for slug, updated in await self.database.content_versions(category):
            digest.update(f"{slug}\0{updated}\n".encode("utf-8"))
        return digest.hexdigest()
