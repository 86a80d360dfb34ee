"""HTTP surface tests via httpx against the ASGI app."""

import pytest
from dependency_injector import providers
from httpx import ASGITransport, AsyncClient

from core.container import container
from main import app
from services.content_cache import ContentCache
from services.stats import StatsService
from tests.helpers import BrokenSource


@pytest.fixture
async def client(settings, cache, source, content_cache, stats, view_counts, invalidator):
    container.settings.override(providers.Object(settings))
    container.cache.override(providers.Object(cache))
    container.content_source.override(providers.Object(source))
    container.content_cache.override(providers.Object(content_cache))
    container.stats_service.override(providers.Object(stats))
    container.view_count_service.override(providers.Object(view_counts))
    container.invalidator.override(providers.Object(invalidator))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    container.reset_override()


class TestAnalyticsRoutes:
    async def test_track_view(self, client):
        response = await client.post("/api/analytics/track-view",
                                     json={"category": "agents", "slug": "code-reviewer-agent"})
        assert response.status_code == 200
        assert response.json() == {"success": True, "viewCount": 1}

    async def test_track_view_invalid_is_still_200(self, client):
        response = await client.post("/api/analytics/track-view", json={"category": "widgets", "slug": "x"})
        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "Unknown category: widgets"}

    async def test_track_view_missing_slug(self, client):
        response = await client.post("/api/analytics/track-view", json={"category": "agents"})
        assert response.status_code == 200
        assert response.json()["success"] is False

    async def test_track_view_disabled(self, client, cache, settings, clock):
        off = StatsService(cache, settings.model_copy(update={"analytics_enabled": False}), clock=clock)
        container.stats_service.override(providers.Object(off))

        response = await client.post("/api/analytics/track-view",
                                     json={"category": "agents", "slug": "code-reviewer-agent"})
        assert response.json() == {"success": False, "message": "Tracking disabled"}

    async def test_track_copy(self, client):
        response = await client.post("/api/analytics/track-copy",
                                     json={"category": "mcp", "slug": "github-server"})
        assert response.json() == {"success": True, "copyCount": 1}

    async def test_view_counts(self, client, stats):
        for _ in range(3):
            await stats.increment_view("agents", "code-reviewer-agent")

        response = await client.post("/api/analytics/view-counts", json={"items": [
            {"category": "agents", "slug": "code-reviewer-agent"},
            {"category": "agents", "slug": "code-reviewer-agent"},
            {"category": "rules", "slug": "fresh"},
        ]})
        assert response.status_code == 200
        assert response.json() == {
            "agents:code-reviewer-agent": {"views": 3},
            "rules:fresh": {"views": 0},
        }

    async def test_trending(self, client, stats):
        await stats.increment_view("agents", "code-reviewer-agent")

        response = await client.get("/api/analytics/trending/agents", params={"limit": 5})
        assert response.json() == {"category": "agents", "slugs": ["code-reviewer-agent"]}

        empty = await client.get("/api/analytics/trending/rules")
        assert empty.json() == {"category": "rules", "slugs": []}

    async def test_trending_unknown_category(self, client):
        response = await client.get("/api/analytics/trending/widgets")
        assert response.status_code == 404

    async def test_popular_and_counts(self, client, stats):
        await stats.increment_view("agents", "code-reviewer-agent")
        await stats.track_copy("agents", "code-reviewer-agent")

        popular = await client.get("/api/analytics/popular/agents")
        assert popular.json() == {
            "category": "agents",
            "items": [{"slug": "code-reviewer-agent", "score": 1.0}],
        }
        counts = await client.get("/api/analytics/counts/agents/code-reviewer-agent")
        assert counts.json()["views"] == 1
        assert counts.json()["copies"] == 1


class TestContentRoutes:
    async def test_list(self, client):
        response = await client.get("/api/content/agents")
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert [i["slug"] for i in body["items"]] == ["code-reviewer-agent", "minimal-agent"]

    async def test_list_with_views(self, client, stats):
        await stats.increment_view("agents", "minimal-agent")
        response = await client.get("/api/content/agents", params={"with_views": "true"})
        views = {i["slug"]: i["view_count"] for i in response.json()["items"]}
        assert views == {"code-reviewer-agent": 0, "minimal-agent": 1}

    async def test_list_unknown_category(self, client):
        assert (await client.get("/api/content/widgets")).status_code == 404

    async def test_item(self, client):
        response = await client.get("/api/content/agents/code-reviewer-agent")
        assert response.status_code == 200
        assert response.json()["title"] == "Code Reviewer"
        assert "content" not in response.json()

    async def test_full_item(self, client):
        response = await client.get("/api/content/agents/code-reviewer-agent", params={"full": "true"})
        body = response.json()
        assert body["content"] == "You are a meticulous code reviewer."
        assert body["is_fallback"] is False

    async def test_missing_item_is_404(self, client):
        assert (await client.get("/api/content/agents/nope")).status_code == 404
        assert (await client.get("/api/content/agents/Bad Slug!")).status_code == 404

    async def test_source_down_is_503(self, client, cache, settings):
        container.content_cache.override(providers.Object(ContentCache(cache, BrokenSource(), settings)))

        assert (await client.get("/api/content/agents")).status_code == 503
        assert (await client.get("/api/content/agents/code-reviewer-agent")).status_code == 503


class TestCacheRoutes:
    async def test_invalidate(self, client):
        response = await client.post("/api/cache/invalidate")
        assert response.status_code == 200
        assert "agents" in response.json()["changed"]

        again = await client.post("/api/cache/invalidate")
        assert again.json()["changed"] == []

    async def test_invalidate_explicit(self, client):
        response = await client.post("/api/cache/invalidate", json={"categories": ["mcp"]})
        assert response.json()["invalidated"] == ["mcp"]

    async def test_invalidate_unknown_category(self, client):
        response = await client.post("/api/cache/invalidate", json={"categories": ["widgets"]})
        assert response.status_code == 400

    async def test_delete_item(self, client, stats):
        await stats.increment_view("agents", "code-reviewer-agent")
        response = await client.delete("/api/cache/items/agents/code-reviewer-agent")
        assert response.json() == {"success": True}
        assert await stats.get_view_count("agents", "code-reviewer-agent") == 0

    async def test_warm_and_stats(self, client):
        warmed = await client.post("/api/cache/warm", json={"categories": ["agents"]})
        assert warmed.json() == {"success": True, "warmed": {"agents": 2}}

        stats = await client.get("/api/cache/stats")
        assert stats.json()["backend"] == "memory"
        assert stats.json()["sets"] >= 3


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"cache": True, "source": True}
        assert body["cache"]["backend"] == "memory"

    async def test_health_degraded_when_cache_down(self, client, failing_cache):
        container.cache.override(providers.Object(failing_cache))
        body = (await client.get("/health")).json()
        assert body["status"] == "degraded"
        assert body["checks"]["cache"] is False
