"""Request/response models for the analytics actions."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class TrackRequest(BaseModel):
    """Raw ``(category, slug)`` pair as sent by the browser."""
    category: str = Field(max_length=50)
    slug: str = Field(max_length=500)


class TrackResult(BaseModel):
    """Best-effort outcome of a view/copy action."""
    success: bool
    view_count: Optional[int] = Field(default=None, serialization_alias="viewCount")
    copy_count: Optional[int] = Field(default=None, serialization_alias="copyCount")
    message: Optional[str] = None


class ViewCountRequest(BaseModel):
    items: List[TrackRequest] = Field(default_factory=list, max_length=500)


class ViewCount(BaseModel):
    views: int = 0


class TrendingResponse(BaseModel):
    category: str
    slugs: List[str]


class PopularItem(BaseModel):
    slug: str
    score: float


class InvalidateRequest(BaseModel):
    categories: Optional[List[str]] = None


class InvalidationReport(BaseModel):
    """Outcome of one build-complete invalidation run."""
    changed: List[str] = Field(default_factory=list)
    invalidated: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    keys_deleted: int = 0
    duration_ms: float = 0.0
    fingerprints: Dict[str, str] = Field(default_factory=dict)
