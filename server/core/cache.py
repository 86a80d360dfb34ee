"""Cache service with Redis (production) or in-memory (development) backend.

Every public operation returns a ``CacheResult`` instead of raising, so a
cache outage is an explicit branch at the call site rather than a hidden
``except``. Store calls are bounded by ``cache_command_timeout``; after
``cache_failure_threshold`` consecutive failures the service stops talking
to the store for ``cache_retry_after`` seconds.
"""

import asyncio
import fnmatch
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

import redis.asyncio as redis

from core.config import Settings
from core.exceptions import CacheUnavailable
from core.logging import get_logger, log_cache_operation

logger = get_logger(__name__)


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


@dataclass
class CacheResult:
    """Outcome of a single cache operation."""
    status: CacheStatus
    value: Any = None
    error: Optional[CacheUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.status is not CacheStatus.ERROR

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT

    @classmethod
    def found(cls, value: Any) -> "CacheResult":
        return cls(CacheStatus.HIT, value)

    @classmethod
    def missing(cls) -> "CacheResult":
        return cls(CacheStatus.MISS)

    @classmethod
    def failed(cls, error: CacheUnavailable) -> "CacheResult":
        return cls(CacheStatus.ERROR, error=error)


class CacheBackend(Protocol):
    """Primitive key-value operations shared by all backends."""

    name: str

    async def ping(self) -> bool: ...
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str, ttl: int) -> None: ...
    async def mget(self, keys: List[str]) -> List[Optional[str]]: ...
    async def incr(self, key: str, ttl: Optional[int] = None) -> int: ...
    async def expire(self, key: str, ttl: int) -> bool: ...
    async def delete(self, *keys: str) -> int: ...
    async def scan_keys(self, pattern: str) -> List[str]: ...
    async def delete_pattern(self, pattern: str) -> int: ...
    async def zincrby(self, key: str, amount: float, member: str) -> float: ...
    async def zrange_with_scores(self, key: str) -> List[Tuple[str, float]]: ...
    async def zrem(self, key: str, *members: str) -> int: ...
    async def close(self) -> None: ...


class RedisBackend:
    """redis.asyncio backend."""

    name = "redis"

    def __init__(self, client: redis.Redis, scan_count: int = 500):
        self.redis = client
        self.scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, timeout: float) -> "RedisBackend":
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            retry_on_timeout=False,
            health_check_interval=30,
        )
        return cls(client)

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self.redis.setex(key, ttl, value)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        return await self.redis.mget(keys)

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        if ttl is None:
            return int(await self.redis.incr(key))
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            # Only set TTL on first write so the window does not slide
            pipe.expire(key, ttl, nx=True)
            results = await pipe.execute()
        return int(results[0])

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.redis.expire(key, ttl))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.redis.delete(*keys))

    async def scan_keys(self, pattern: str) -> List[str]:
        return [key async for key in self.redis.scan_iter(match=pattern, count=self.scan_count)]

    async def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch: List[str] = []
        async for key in self.redis.scan_iter(match=pattern, count=self.scan_count):
            batch.append(key)
            if len(batch) >= 200:
                deleted += await self.redis.delete(*batch)
                batch = []
        if batch:
            deleted += await self.redis.delete(*batch)
        return deleted

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        return float(await self.redis.zincrby(key, amount, member))

    async def zrange_with_scores(self, key: str) -> List[Tuple[str, float]]:
        return [
            (member, float(score))
            for member, score in await self.redis.zrange(key, 0, -1, desc=True, withscores=True)
        ]

    async def zrem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(await self.redis.zrem(key, *members))

    async def close(self) -> None:
        await self.redis.aclose()


class MemoryBackend:
    """In-process backend for development and tests.

    Mirrors the Redis semantics used by this service: string values,
    integer INCR on string values, TTL expiry, sorted sets and glob
    pattern matching. Not shared across processes.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._strings: Dict[str, str] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}
        self._expiry: Dict[str, float] = {}

    def _expired(self, key: str) -> bool:
        expires_at = self._expiry.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._strings.pop(key, None)
            self._zsets.pop(key, None)
            self._expiry.pop(key, None)
            return True
        return False

    def _keys(self) -> List[str]:
        keys = [k for k in list(self._strings) + list(self._zsets) if not self._expired(k)]
        return sorted(set(keys))

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        if self._expired(key):
            return None
        return self._strings.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._strings[key] = value
        self._expiry[key] = self._clock() + ttl

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        return [await self.get(key) for key in keys]

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        current = await self.get(key)
        try:
            value = int(current or 0) + 1
        except ValueError:
            raise ValueError(f"value at {key} is not an integer") from None
        self._strings[key] = str(value)
        if ttl is not None and key not in self._expiry:
            self._expiry[key] = self._clock() + ttl
        return value

    async def expire(self, key: str, ttl: int) -> bool:
        if self._expired(key) or (key not in self._strings and key not in self._zsets):
            return False
        self._expiry[key] = self._clock() + ttl
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._expired(key):
                continue
            if self._strings.pop(key, None) is not None or self._zsets.pop(key, None) is not None:
                deleted += 1
            self._expiry.pop(key, None)
        return deleted

    async def scan_keys(self, pattern: str) -> List[str]:
        return [k for k in self._keys() if fnmatch.fnmatchcase(k, pattern)]

    async def delete_pattern(self, pattern: str) -> int:
        return await self.delete(*await self.scan_keys(pattern))

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        self._expired(key)
        zset = self._zsets.setdefault(key, {})
        zset[member] = zset.get(member, 0.0) + amount
        return zset[member]

    async def zrange_with_scores(self, key: str) -> List[Tuple[str, float]]:
        if self._expired(key):
            return []
        zset = self._zsets.get(key, {})
        # Redis orders equal scores lexicographically; reversed for desc
        return sorted(zset.items(), key=lambda item: (item[1], item[0]), reverse=True)

    async def zrem(self, key: str, *members: str) -> int:
        if self._expired(key):
            return 0
        zset = self._zsets.get(key)
        if not zset:
            return 0
        removed = sum(1 for m in members if zset.pop(m, None) is not None)
        if not zset:
            self._zsets.pop(key, None)
            self._expiry.pop(key, None)
        return removed

    async def close(self) -> None:
        self._strings.clear()
        self._zsets.clear()
        self._expiry.clear()


class CacheService:
    """Async cache service owning exactly one backend.

    Constructed once per process (see ``core.container``); tests pass a
    backend explicitly. Backend selection when none is injected:
    - Redis: REDIS_ENABLED=true and the server answers PING at startup
    - Memory: otherwise (or on connect failure unless REDIS_REQUIRED=true)
    """

    def __init__(self, settings: Settings, backend: Optional[CacheBackend] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.backend: Optional[CacheBackend] = backend
        self._clock = clock
        self._consecutive_failures = 0
        self._degraded_until = 0.0
        # Redis was configured but the in-process store is serving instead
        self.redis_fallback = False
        self.stats: Dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
            "skipped": 0,
        }

    async def startup(self):
        """Initialize cache connection."""
        if self.backend is not None:
            logger.info("Cache backend injected", backend=self.backend.name)
            return

        if self.settings.redis_enabled and self.settings.redis_url:
            backend = RedisBackend.from_url(self.settings.redis_url, self.settings.cache_command_timeout)
            try:
                await asyncio.wait_for(backend.ping(), timeout=self.settings.cache_command_timeout * 4)
                self.backend = backend
                logger.info("Redis cache initialized", url=self.settings.redis_url)
                return
            except Exception as e:
                await backend.close()
                if self.settings.redis_required:
                    raise CacheUnavailable("startup", f"Redis connection failed: {e}") from e
                logger.warning("Redis connection failed, falling back to memory", error=str(e))

        self.backend = MemoryBackend()
        self.redis_fallback = self.settings.redis_enabled
        logger.info("Using in-memory cache", redis_enabled=self.settings.redis_enabled)

    async def shutdown(self):
        """Close cache connections."""
        if self.backend is not None:
            await self.backend.close()
            logger.info("Cache connections closed", backend=self.backend.name)

    # ========================================================================
    # Failure accounting
    # ========================================================================

    def is_degraded(self) -> bool:
        return self._clock() < self._degraded_until

    def is_enabled(self) -> bool:
        """Backend present and not in a failure cool-down."""
        return self.backend is not None and not self.is_degraded()

    def is_redis_available(self) -> bool:
        return isinstance(self.backend, RedisBackend) and not self.is_degraded()

    def _record_failure(self, operation: str, key: str, reason: str) -> CacheUnavailable:
        self.stats["errors"] += 1
        self._consecutive_failures += 1
        logger.warning("Cache operation failed", operation=operation, cache_key=key, error=reason,
                       consecutive_failures=self._consecutive_failures)
        if self._consecutive_failures >= self.settings.cache_failure_threshold:
            self._degraded_until = self._clock() + self.settings.cache_retry_after
            self._consecutive_failures = 0
            logger.error("Cache unstable, bypassing store",
                         retry_after_seconds=self.settings.cache_retry_after)
        return CacheUnavailable(operation, reason)

    async def _run(self, operation: str, key: str,
                   call: Callable[[CacheBackend], Awaitable[Any]]) -> Tuple[bool, Any, Optional[CacheUnavailable]]:
        if self.backend is None:
            return False, None, CacheUnavailable(operation, "cache not started")
        if self.is_degraded():
            return False, None, CacheUnavailable(operation, "cache degraded")
        try:
            value = await asyncio.wait_for(call(self.backend), timeout=self.settings.cache_command_timeout)
        except asyncio.TimeoutError:
            return False, None, self._record_failure(operation, key, "timed out")
        except Exception as e:
            return False, None, self._record_failure(operation, key, f"{type(e).__name__}: {e}")
        self._consecutive_failures = 0
        return True, value, None

    # ========================================================================
    # JSON values
    # ========================================================================

    async def get(self, key: str) -> CacheResult:
        """Get a JSON value from cache."""
        ok, raw, error = await self._run("get", key, lambda b: b.get(key))
        if not ok:
            return CacheResult.failed(error)
        if raw is None:
            self.stats["misses"] += 1
            log_cache_operation(logger, "get", key, hit=False)
            return CacheResult.missing()
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry", cache_key=key)
            self.stats["misses"] += 1
            return CacheResult.missing()
        self.stats["hits"] += 1
        log_cache_operation(logger, "get", key, hit=True)
        return CacheResult.found(value)

    async def set(self, key: str, value: Any, ttl: int) -> CacheResult:
        """Set a JSON value with TTL.

        Values larger than ``cache_max_value_bytes`` are not stored; the
        result is a miss so callers simply serve from the source.
        """
        serialized = json.dumps(value, default=str)
        size = len(serialized.encode("utf-8"))
        if size > self.settings.cache_max_value_bytes:
            self.stats["skipped"] += 1
            logger.warning("Cache value too large, not stored", cache_key=key, size_bytes=size,
                           max_bytes=self.settings.cache_max_value_bytes)
            return CacheResult.missing()
        ok, _, error = await self._run("set", key, lambda b: b.set(key, serialized, int(ttl)))
        if not ok:
            return CacheResult.failed(error)
        self.stats["sets"] += 1
        log_cache_operation(logger, "set", key, ttl=ttl)
        return CacheResult.found(True)

    # ========================================================================
    # Raw primitives
    # ========================================================================

    async def mget(self, keys: List[str]) -> CacheResult:
        """Fetch raw string values for many keys in one round trip."""
        ok, values, error = await self._run("mget", f"{len(keys)} keys", lambda b: b.mget(keys))
        if not ok:
            return CacheResult.failed(error)
        return CacheResult.found(values)

    async def incr(self, key: str, ttl: Optional[int] = None) -> CacheResult:
        """Atomic increment; ``ttl`` applies only when the key has none."""
        ok, value, error = await self._run("incr", key, lambda b: b.incr(key, ttl))
        if not ok:
            return CacheResult.failed(error)
        return CacheResult.found(value)

    async def expire(self, key: str, ttl: int) -> CacheResult:
        ok, value, error = await self._run("expire", key, lambda b: b.expire(key, ttl))
        return CacheResult.found(value) if ok else CacheResult.failed(error)

    async def delete(self, *keys: str) -> CacheResult:
        ok, deleted, error = await self._run("delete", ",".join(keys), lambda b: b.delete(*keys))
        if not ok:
            return CacheResult.failed(error)
        self.stats["deletes"] += deleted
        log_cache_operation(logger, "delete", ",".join(keys), deleted=deleted)
        return CacheResult.found(deleted)

    async def scan_keys(self, pattern: str) -> CacheResult:
        ok, keys, error = await self._run("scan_keys", pattern, lambda b: b.scan_keys(pattern))
        return CacheResult.found(keys) if ok else CacheResult.failed(error)

    async def delete_pattern(self, pattern: str) -> CacheResult:
        """Delete all keys matching a glob pattern (SCAN based)."""
        ok, deleted, error = await self._run("delete_pattern", pattern, lambda b: b.delete_pattern(pattern))
        if not ok:
            return CacheResult.failed(error)
        self.stats["deletes"] += deleted
        log_cache_operation(logger, "delete_pattern", pattern, deleted=deleted)
        return CacheResult.found(deleted)

    async def zincrby(self, key: str, amount: float, member: str) -> CacheResult:
        ok, score, error = await self._run("zincrby", key, lambda b: b.zincrby(key, amount, member))
        return CacheResult.found(score) if ok else CacheResult.failed(error)

    async def zrange_with_scores(self, key: str) -> CacheResult:
        """All members of a sorted set, highest score first."""
        ok, items, error = await self._run("zrange", key, lambda b: b.zrange_with_scores(key))
        return CacheResult.found(items) if ok else CacheResult.failed(error)

    async def zrem(self, key: str, *members: str) -> CacheResult:
        ok, removed, error = await self._run("zrem", key, lambda b: b.zrem(key, *members))
        return CacheResult.found(removed) if ok else CacheResult.failed(error)

    async def ping(self) -> bool:
        ok, value, _ = await self._run("ping", "-", lambda b: b.ping())
        return ok and bool(value)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "backend": self.backend.name if self.backend else None,
            "degraded": self.is_degraded(),
            "redis_fallback": self.redis_fallback,
        }
