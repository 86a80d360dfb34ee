"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.cache import CacheService, MemoryBackend
from core.config import Settings
from services.content_cache import ContentCache
from services.content_source import FileContentSource
from services.invalidation import CacheInvalidator
from services.stats import StatsService
from services.view_counts import ViewCountService
from tests.helpers import SAMPLE_CONTENT, FailingBackend, FrozenClock, write_content


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "content"
    write_content(directory, SAMPLE_CONTENT)
    return directory


@pytest.fixture
def settings(tmp_path: Path, content_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        content_dir=str(content_dir),
        content_source="file",
        build_manifest_path=str(tmp_path / "manifest" / "build-manifest.json"),
        database_url="sqlite+aiosqlite:///:memory:",
        redis_enabled=False,
        cache_command_timeout=0.05,
        cache_failure_threshold=3,
        cache_retry_after=30,
        log_format="console",
    )


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
async def cache(settings: Settings, backend: MemoryBackend) -> CacheService:
    service = CacheService(settings, backend=backend)
    await service.startup()
    return service


@pytest.fixture
async def failing_cache(settings: Settings) -> CacheService:
    service = CacheService(settings, backend=FailingBackend())
    await service.startup()
    return service


@pytest.fixture
def source(content_dir: Path) -> FileContentSource:
    return FileContentSource(str(content_dir))


@pytest.fixture
def content_cache(cache: CacheService, source: FileContentSource, settings: Settings) -> ContentCache:
    return ContentCache(cache, source, settings)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def stats(cache: CacheService, settings: Settings, clock: FrozenClock) -> StatsService:
    return StatsService(cache, settings, clock=clock)


@pytest.fixture
def view_counts(cache: CacheService, settings: Settings) -> ViewCountService:
    return ViewCountService(cache, settings)


@pytest.fixture
def invalidator(content_cache: ContentCache, stats: StatsService, settings: Settings) -> CacheInvalidator:
    return CacheInvalidator(content_cache, stats, settings)
