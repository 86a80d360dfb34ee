"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from services.content_cache import ContentCache
from services.content_source import DatabaseContentSource, FileContentSource
from services.invalidation import CacheInvalidator
from services.stats import StatsService
from services.view_counts import ViewCountService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (only started when content_source == "database")
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Cache service (Redis when enabled and reachable, memory otherwise)
    cache = providers.Singleton(
        CacheService,
        settings=settings
    )

    # Source of truth
    content_source = providers.Selector(
        settings.provided.content_source,
        file=providers.Singleton(
            FileContentSource,
            content_dir=settings.provided.content_dir
        ),
        database=providers.Singleton(
            DatabaseContentSource,
            database=database
        ),
    )

    # Services
    content_cache = providers.Singleton(
        ContentCache,
        cache=cache,
        source=content_source,
        settings=settings
    )

    stats_service = providers.Singleton(
        StatsService,
        cache=cache,
        settings=settings
    )

    view_count_service = providers.Singleton(
        ViewCountService,
        cache=cache,
        settings=settings
    )

    invalidator = providers.Singleton(
        CacheInvalidator,
        content_cache=content_cache,
        stats=stats_service,
        settings=settings
    )


# Global container instance
container = Container()
