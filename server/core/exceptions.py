"""Content service exception hierarchy."""


class ContentError(Exception):
    """Base exception for all content and analytics errors."""


class ValidationError(ContentError):
    """Malformed category or slug, rejected before any store is touched."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class CacheUnavailable(ContentError):
    """Cache store unreachable, timed out or temporarily degraded."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"[{operation}] {reason}")


class SourceNotFound(ContentError):
    """Requested content does not exist in the source of truth."""

    def __init__(self, category: str, slug: str):
        self.category = category
        self.slug = slug
        super().__init__(f"Content not found: {category}/{slug}")


class SourceUnavailable(ContentError):
    """Source of truth unreachable. No further fallback exists."""
