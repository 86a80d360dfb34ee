"""Tests for the build-complete invalidation hook."""

import json
from pathlib import Path

import pytest

from constants import ALL_CATEGORIES, content_list_key, content_meta_key
from core.exceptions import ValidationError
from services.content_cache import ContentCache
from services.invalidation import CacheInvalidator
from services.stats import StatsService


async def _populate(content_cache):
    await content_cache.get_by_category("agents")
    await content_cache.get_by_slug("agents", "code-reviewer-agent")
    await content_cache.get_by_category("mcp")
    await content_cache.get_by_slug("mcp", "github-server")


def _touch_agent(content_dir: Path, description: str) -> None:
    path = content_dir / "agents" / "minimal-agent.json"
    record = json.loads(path.read_text())
    record["description"] = description
    path.write_text(json.dumps(record))


class TestOnBuildComplete:
    async def test_first_run_treats_everything_as_changed(self, invalidator, settings):
        report = await invalidator.on_build_complete()
        assert set(report.changed) == ALL_CATEGORIES
        assert set(report.invalidated) == ALL_CATEGORIES
        assert report.failed == []
        assert Path(settings.build_manifest_path).is_file()

    async def test_unchanged_content_is_left_alone(self, invalidator, content_cache, backend):
        await invalidator.on_build_complete()
        await _populate(content_cache)

        report = await invalidator.on_build_complete()
        assert report.changed == []
        assert report.keys_deleted == 0
        assert await backend.get(content_list_key("agents")) is not None

    async def test_only_changed_category_is_purged(self, invalidator, content_cache, backend, content_dir):
        await invalidator.on_build_complete()
        await _populate(content_cache)

        _touch_agent(content_dir, "Updated description")
        report = await invalidator.on_build_complete()

        assert report.changed == ["agents"]
        assert report.invalidated == ["agents"]
        assert report.keys_deleted == 2
        assert await backend.scan_keys("content:agents:*") == []
        assert await backend.scan_keys("content:mcp:*") == [
            content_list_key("mcp"), content_meta_key("mcp", "github-server")
        ]

        item = await content_cache.get_by_slug("agents", "minimal-agent")
        assert item.description == "Updated description"

    async def test_running_twice_equals_running_once(self, invalidator, content_cache, backend, content_dir):
        await invalidator.on_build_complete()
        await _populate(content_cache)
        _touch_agent(content_dir, "v2")

        await invalidator.on_build_complete()
        after_once = await backend.scan_keys("*")
        second = await invalidator.on_build_complete()

        assert second.changed == []
        assert await backend.scan_keys("*") == after_once

    async def test_explicit_categories(self, invalidator, content_cache, backend):
        await _populate(content_cache)

        report = await invalidator.on_build_complete(["mcp", "mcp"])
        assert report.changed == ["mcp"]
        assert await backend.scan_keys("content:mcp:*") == []
        assert await backend.get(content_list_key("agents")) is not None

    async def test_explicit_unknown_category(self, invalidator):
        with pytest.raises(ValidationError):
            await invalidator.on_build_complete(["widgets"])

    async def test_cache_down_never_raises_and_retries_later(self, failing_cache, source, settings, invalidator):
        down_cache = ContentCache(failing_cache, source, settings)
        down = CacheInvalidator(down_cache, StatsService(failing_cache, settings), settings)

        report = await down.on_build_complete()
        assert report.invalidated == []
        assert set(report.failed) == ALL_CATEGORIES
        assert not Path(settings.build_manifest_path).exists()

        # Cache is back: the pending purge happens on the next build
        report = await invalidator.on_build_complete()
        assert set(report.invalidated) == ALL_CATEGORIES

    async def test_corrupt_manifest_is_ignored(self, invalidator, settings):
        path = Path(settings.build_manifest_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{not json")

        report = await invalidator.on_build_complete()
        assert set(report.changed) == ALL_CATEGORIES
        assert json.loads(path.read_text())["version"] == 1

    async def test_changed_since_last_build(self, invalidator, content_dir):
        await invalidator.on_build_complete()
        assert await invalidator.changed_since_last_build() == []

        _touch_agent(content_dir, "v3")
        assert await invalidator.changed_since_last_build() == ["agents"]


class TestOnContentDeleted:
    async def test_drops_cache_and_counters(self, invalidator, content_cache, stats, backend):
        await _populate(content_cache)
        await stats.increment_view("agents", "code-reviewer-agent")
        await stats.increment_view("agents", "minimal-agent")

        assert await invalidator.on_content_deleted("agents", "code-reviewer-agent") is True
        assert await backend.get(content_meta_key("agents", "code-reviewer-agent")) is None
        assert await backend.get(content_list_key("agents")) is None
        assert await stats.get_view_count("agents", "code-reviewer-agent") == 0
        assert await stats.get_trending("agents") == ["minimal-agent"]
