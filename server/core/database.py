"""Async database service with SQLModel and SQLAlchemy 2.0."""

from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Tuple
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager

from core.config import Settings
from core.exceptions import SourceUnavailable
from core.logging import get_logger
from models.database import ContentRecord

logger = get_logger(__name__)

_RECORD_COLUMNS = {"title", "description", "author", "tags", "source_url", "date_added", "content"}


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            self.engine = create_async_engine(
                self.settings.database_url,
                echo=self.settings.database_echo,
                future=True
            )

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise SourceUnavailable("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Database operation failed", error=str(e))
                raise SourceUnavailable(f"Database operation failed: {e}") from e
            finally:
                await session.close()

    # ============================================================================
    # Content Records
    # ============================================================================

    async def list_content(self, category: str) -> List[ContentRecord]:
        """Get all records of a category ordered by slug."""
        async with self.get_session() as session:
            stmt = select(ContentRecord).where(ContentRecord.category == category).order_by(ContentRecord.slug)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_content(self, category: str, slug: str) -> Optional[ContentRecord]:
        """Get a single record by category and slug."""
        async with self.get_session() as session:
            stmt = select(ContentRecord).where(
                ContentRecord.category == category,
                ContentRecord.slug == slug,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def save_content(self, record: Dict[str, Any]) -> ContentRecord:
        """Insert or update a record; unknown keys are stored in ``body``."""
        category, slug = record["category"], record["slug"]
        columns = {k: v for k, v in record.items() if k in _RECORD_COLUMNS}
        body = {k: v for k, v in record.items() if k not in _RECORD_COLUMNS | {"category", "slug"}}

        async with self.get_session() as session:
            stmt = select(ContentRecord).where(
                ContentRecord.category == category,
                ContentRecord.slug == slug,
            )
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                for name, value in columns.items():
                    setattr(existing, name, value)
                existing.body = body or None
                existing.updated_at = datetime.now(timezone.utc)
            else:
                existing = ContentRecord(category=category, slug=slug, body=body or None, **columns)
                session.add(existing)

            await session.commit()
            return existing

    async def delete_content(self, category: str, slug: str) -> bool:
        """Delete a record. Returns True when a row was removed."""
        async with self.get_session() as session:
            stmt = select(ContentRecord).where(
                ContentRecord.category == category,
                ContentRecord.slug == slug,
            )
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing is None:
                return False
            await session.delete(existing)
            await session.commit()
            return True

    async def content_versions(self, category: str) -> List[Tuple[str, str]]:
        """(slug, updated_at) pairs used for change detection."""
        async with self.get_session() as session:
            stmt = (
                select(ContentRecord.slug, ContentRecord.updated_at)
                .where(ContentRecord.category == category)
                .order_by(ContentRecord.slug)
            )
            result = await session.execute(stmt)
            return [(slug, updated.isoformat() if updated else "") for slug, updated in result.all()]
