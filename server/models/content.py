"""Pydantic v2 domain models for content items."""

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from constants import FULL_CONTENT_FIELDS, SLUG_MAX_LENGTH, SLUG_PATTERN, ContentCategory, item_id
from core.exceptions import ValidationError


def normalize_slug(value: str) -> str:
    """Trim, lower-case and validate a content slug."""
    if not isinstance(value, str):
        raise ValueError("Slug must be a string")
    slug = value.strip().lower()
    if not slug:
        raise ValueError("Content slug is required")
    if len(slug) > SLUG_MAX_LENGTH:
        raise ValueError("Content slug is too long")
    if not SLUG_PATTERN.match(slug):
        raise ValueError(
            "Slug can only contain letters, numbers, hyphens, underscores, and forward slashes"
        )
    if slug.startswith("/") or slug.endswith("/") or "//" in slug:
        raise ValueError("Slug path segments must not be empty")
    return slug


class ContentKey(BaseModel):
    """Unique identifier of a content item."""
    model_config = ConfigDict(frozen=True)

    category: ContentCategory
    slug: str

    @field_validator("slug", mode="before")
    @classmethod
    def _normalize_slug(cls, v):
        return normalize_slug(v)

    @property
    def cache_id(self) -> str:
        return item_id(self.category.value, self.slug)

    @classmethod
    def parse(cls, category: Union[str, ContentCategory], slug: str) -> "ContentKey":
        """Build a key from untrusted input, raising ``ValidationError``."""
        try:
            return cls(category=category, slug=slug)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else "input"
            if field == "category":
                message = f"Unknown category: {category}"
            else:
                message = first.get("msg", "Invalid value").removeprefix("Value error, ")
            raise ValidationError(field, message) from None


def parse_category(category: Union[str, ContentCategory]) -> ContentCategory:
    try:
        return ContentCategory(category)
    except ValueError:
        raise ValidationError("category", f"Unknown category: {category}") from None


class ContentMetadata(BaseModel):
    """Lightweight record used by list and search views."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category: ContentCategory
    slug: str
    title: str = ""
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    author: Optional[str] = None
    date_added: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("date_added", "dateAdded")
    )
    date_updated: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("date_updated", "dateUpdated")
    )
    source_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("source_url", "sourceUrl", "githubUrl")
    )

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ContentMetadata":
        """Strip heavy fields from a source record."""
        return cls.model_validate({k: v for k, v in record.items() if k not in FULL_CONTENT_FIELDS})


class ContentFull(ContentMetadata):
    """Metadata plus heavy fields, cached under its own key namespace."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    content: Optional[str] = None
    code_blocks: List[Dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("code_blocks", "codeBlocks")
    )
    installation: Optional[Dict[str, Any]] = None
    features: List[str] = Field(default_factory=list)
    use_cases: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("use_cases", "useCases")
    )
    # True when no heavy payload exists and metadata was returned instead
    is_fallback: bool = False

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ContentFull":
        return cls.model_validate(record)

    @classmethod
    def from_metadata(cls, metadata: ContentMetadata) -> "ContentFull":
        return cls.model_validate({**metadata.model_dump(), "is_fallback": True})


def has_full_payload(record: Dict[str, Any]) -> bool:
    """Whether a source record carries any heavy field."""
    return any(record.get(field) for field in FULL_CONTENT_FIELDS)
