"""Test doubles and sample data shared across the suite."""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.cache import MemoryBackend
from core.exceptions import SourceUnavailable

SAMPLE_CONTENT: Dict[str, List[Dict[str, Any]]] = {
    "agents": [
        {
            "slug": "code-reviewer-agent",
            "title": "Code Reviewer",
            "description": "Reviews pull requests",
            "tags": ["review", "quality"],
            "author": "alice",
            "dateAdded": "2025-01-10",
            "content": "You are a meticulous code reviewer.",
            "features": ["Inline comments", "Style checks"],
            "codeBlocks": [{"language": "bash", "code": "claude --agent code-reviewer"}],
        },
        {
            "slug": "minimal-agent",
            "title": "Minimal",
            "description": "Metadata only",
            "tags": [],
        },
    ],
    "mcp": [
        {
            "slug": "github-server",
            "title": "GitHub MCP",
            "description": "Repository access",
            "installation": {"npm": "npx @modelcontextprotocol/server-github"},
        },
    ],
}


def write_content(content_dir: Path, content: Dict[str, List[Dict[str, Any]]]) -> None:
    for category, records in content.items():
        directory = content_dir / category
        directory.mkdir(parents=True, exist_ok=True)
        for record in records:
            (directory / f"{record['slug']}.json").write_text(json.dumps(record), encoding="utf-8")


class FrozenClock:
    """Settable UTC clock for day-bucket tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FailingBackend:
    """Store that is unreachable: every command raises ``ConnectionError``."""

    name = "failing"

    def __init__(self):
        self.calls = 0

    def _fail(self, *args, **kwargs):
        self.calls += 1
        raise ConnectionError("Connection refused")

    async def ping(self) -> bool:
        self._fail()

    async def get(self, key: str) -> Optional[str]:
        self._fail()

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._fail()

    async def mget(self, keys):
        self._fail()

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        self._fail()

    async def expire(self, key: str, ttl: int) -> bool:
        self._fail()

    async def delete(self, *keys: str) -> int:
        self._fail()

    async def scan_keys(self, pattern: str):
        self._fail()

    async def delete_pattern(self, pattern: str) -> int:
        self._fail()

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        self._fail()

    async def zrange_with_scores(self, key: str):
        self._fail()

    async def zrem(self, key: str, *members: str) -> int:
        self._fail()

    async def close(self) -> None:
        return None


class SlowBackend(MemoryBackend):
    """Memory store whose reads hang far longer than the command timeout."""

    name = "slow"

    def __init__(self, delay: float = 2.0):
        super().__init__()
        self.delay = delay

    async def get(self, key: str) -> Optional[str]:
        await asyncio.sleep(self.delay)
        return await super().get(key)

    async def mget(self, keys):
        await asyncio.sleep(self.delay)
        return await super().mget(keys)




class BrokenSource:
    """Source of truth that cannot be reached."""

    async def list_category(self, category):
        raise SourceUnavailable("disk gone")

    async def get_item(self, category, slug):
        raise SourceUnavailable("disk gone")

    async def category_fingerprint(self, category):
        raise SourceUnavailable("disk gone")
