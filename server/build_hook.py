"""Build pipeline entry point: purge cached content after a content build.

Usage:
  on-build-complete                       # detect changed categories
  on-build-complete --category agents     # purge exactly these
  on-build-complete --dry-run             # list changed categories only

Prints a JSON report and exits 0 even when the cache is unreachable, so a
cache outage never fails a build.
"""
import argparse
import asyncio
import json
import sys
from typing import List, Optional

from constants import ALL_CATEGORIES
from core.container import container
from core.exceptions import CacheUnavailable, SourceUnavailable
from core.logging import configure_logging, get_logger
from models.analytics import InvalidationReport

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="on-build-complete",
        description="Invalidate cached content after a content build.",
    )
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        choices=sorted(ALL_CATEGORIES),
        help="Category to purge (repeatable). Default: every changed category.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changed categories without purging.",
    )
    return parser


async def run(categories: Optional[List[str]], dry_run: bool) -> dict:
    settings = container.settings()
    cache = container.cache()
    try:
        await cache.startup()
    except CacheUnavailable as e:
        logger.warning("Cache unreachable, invalidation will be retried next build", error=str(e))
    if cache.backend is not None and cache.backend.name == "memory" and not cache.redis_fallback:
        logger.warning("In-memory cache is per process; nothing shared to invalidate")

    if settings.content_source == "database":
        await container.database().startup()
    try:
        invalidator = container.invalidator()
        if dry_run:
            return {"dry_run": True, "changed": await invalidator.changed_since_last_build()}
        if cache.redis_fallback:
            # Only the local fallback store is reachable; the manifest stays unchanged
            changed = list(dict.fromkeys(categories)) if categories else await invalidator.changed_since_last_build()
            logger.warning("Redis unreachable, invalidation will be retried next build", failed=changed)
            return InvalidationReport(changed=changed, failed=changed).model_dump()
        report = await invalidator.on_build_complete(categories)
        return report.model_dump()
    finally:
        await cache.shutdown()
        if settings.content_source == "database":
            await container.database().shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    # Report goes to stdout, logs to stderr
    configure_logging(container.settings(), stream=sys.stderr)
    try:
        result = asyncio.run(run(args.categories, args.dry_run))
    except SourceUnavailable as e:
        logger.error("Content source unavailable", error=str(e))
        result = {"error": str(e)}
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
