"""Tests for batched view-count retrieval."""

import asyncio

from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st

from constants import ALL_CATEGORIES
from core.cache import CacheService, MemoryBackend
from core.config import Settings
from models.content import ContentKey, ContentMetadata
from services.stats import StatsService
from services.view_counts import ViewCountService


class CountingBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.mget_calls = 0

    async def mget(self, keys):
        self.mget_calls += 1
        return await super().mget(keys)


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:", **overrides)


async def _service(backend, **overrides):
    settings = _settings(**overrides)
    cache = CacheService(settings, backend=backend)
    await cache.startup()
    return ViewCountService(cache, settings), StatsService(cache, settings)


SEEDED = {("agents", "alpha"): 3, ("agents", "beta"): 1, ("mcp", "alpha"): 2}


class TestBatchViewCounts:
    async def test_three_views_then_batch(self, stats, view_counts):
        for _ in range(3):
            await stats.increment_view("agents", "code-reviewer-agent")

        result = await view_counts.get_batch_view_counts(
            [{"category": "agents", "slug": "code-reviewer-agent"}]
        )
        assert result == {"agents:code-reviewer-agent": {"views": 3}}

    async def test_unknown_and_duplicate_keys(self, stats, view_counts):
        await stats.increment_view("mcp", "github-server")

        result = await view_counts.get_batch_view_counts([
            ("mcp", "github-server"),
            ("mcp", "github-server"),
            ("agents", "brand-new"),
            ("widgets", "not-a-category"),
        ])
        assert result == {
            "mcp:github-server": {"views": 1},
            "agents:brand-new": {"views": 0},
            "widgets:not-a-category": {"views": 0},
        }

    async def test_empty_request(self, view_counts):
        assert await view_counts.get_batch_view_counts([]) == {}

    async def test_single_round_trip(self):
        backend = CountingBackend()
        service, _ = await _service(backend)

        await service.get_batch_view_counts([("agents", f"item-{i}") for i in range(100)])
        assert backend.mget_calls == 1

    async def test_large_batches_are_chunked(self):
        backend = CountingBackend()
        service, _ = await _service(backend, batch_chunk_size=100)

        result = await service.get_batch_view_counts([("agents", f"item-{i}") for i in range(250)])
        assert backend.mget_calls == 3
        assert len(result) == 250

    async def test_store_down_returns_zeros(self, failing_cache, settings):
        service = ViewCountService(failing_cache, settings)
        result = await service.get_batch_view_counts([("agents", "a"), ("mcp", "b")])
        assert result == {"agents:a": {"views": 0}, "mcp:b": {"views": 0}}

    async def test_accepts_content_keys(self, stats, view_counts):
        await stats.increment_view("skills", "pdf-tools")
        result = await view_counts.get_batch_view_counts([ContentKey(category="skills", slug="pdf-tools")])
        assert result == {"skills:pdf-tools": {"views": 1}}

    async def test_enrich_with_view_counts(self, stats, view_counts):
        await stats.increment_view("agents", "code-reviewer-agent")
        items = [
            ContentMetadata(category="agents", slug="code-reviewer-agent", title="Code Reviewer"),
            ContentMetadata(category="agents", slug="minimal-agent"),
        ]

        enriched = await view_counts.enrich_with_view_counts(items)
        assert [(i["slug"], i["view_count"]) for i in enriched] == [
            ("code-reviewer-agent", 1),
            ("minimal-agent", 0),
        ]
        assert enriched[0]["title"] == "Code Reviewer"


@hypothesis_settings(max_examples=50, deadline=None)
@given(
    requests=st.lists(
        st.tuples(
            st.sampled_from(sorted(ALL_CATEGORIES) + ["widgets"]),
            st.sampled_from(["alpha", "beta", "gamma", "Not Valid"]),
        ),
        max_size=40,
    )
)
def test_every_requested_key_is_answered(requests):
    """Property: one entry per distinct requested key, unknowns at zero."""

    async def scenario():
        service, stats = await _service(MemoryBackend())
        for (category, slug), views in SEEDED.items():
            for _ in range(views):
                await stats.increment_view(category, slug)
        return await service.get_batch_view_counts(requests)

    result = asyncio.run(scenario())

    expected_keys = {f"{category}:{slug}" for category, slug in requests}
    assert set(result) == expected_keys
    for category, slug in requests:
        assert result[f"{category}:{slug}"] == {"views": SEEDED.get((category, slug), 0)}
