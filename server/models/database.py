"""SQLModel database models and tables."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import UniqueConstraint, func


class ContentRecord(SQLModel, table=True):
    """Canonical content item (database-backed source of truth)."""

    __tablename__ = "content_items"
    __table_args__ = (UniqueConstraint("category", "slug", name="uq_content_category_slug"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    category: str = Field(index=True, max_length=50)
    slug: str = Field(index=True, max_length=200)
    title: str = Field(default="", max_length=500)
    description: str = Field(default="", max_length=2000)
    author: Optional[str] = Field(default=None, max_length=255)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    source_url: Optional[str] = Field(default=None, max_length=1000)
    date_added: Optional[str] = Field(default=None, max_length=32)
    content: Optional[str] = Field(default=None)
    # Heavy structured fields (code_blocks, installation, features, ...)
    body: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the dict shape shared with the file source."""
        record: Dict[str, Any] = {
            "category": self.category,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "author": self.author,
            "tags": list(self.tags or []),
            "source_url": self.source_url,
            "date_added": self.date_added,
            "date_updated": self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.content:
            record["content"] = self.content
        if self.body:
            record.update(self.body)
        return record
