"""Browser-facing view/copy actions.

Both actions are best effort: they never raise, and a failure only costs
one count. Callers fire and forget.
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ValidationError
from core.logging import get_logger
from models.analytics import TrackRequest, TrackResult
from services.stats import StatsService

logger = get_logger(__name__)

TRACKING_DISABLED = "Tracking disabled"
TRACKING_FAILED = "Tracking unavailable"


def _request(category: Any, slug: Any) -> TrackRequest:
    try:
        return TrackRequest(category=category, slug=slug)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else "input"
        raise ValidationError(field, first.get("msg", "Invalid value")) from None


async def track_view(stats: StatsService, category: Any, slug: Any) -> TrackResult:
    try:
        request = _request(category, slug)
        count = await stats.increment_view(request.category, request.slug)
    except ValidationError as e:
        logger.debug("Rejected view tracking", field=e.field, reason=e.message)
        return TrackResult(success=False, message=e.message)

    if count is None:
        return TrackResult(success=False, message=TRACKING_DISABLED if not stats.is_enabled() else TRACKING_FAILED)
    return TrackResult(success=True, view_count=count)


async def track_copy(stats: StatsService, category: Any, slug: Any) -> TrackResult:
    try:
        request = _request(category, slug)
        count = await stats.track_copy(request.category, request.slug)
    except ValidationError as e:
        logger.debug("Rejected copy tracking", field=e.field, reason=e.message)
        return TrackResult(success=False, message=e.message)

    if count is None:
        return TrackResult(success=False, message=TRACKING_DISABLED if not stats.is_enabled() else TRACKING_FAILED)
    return TrackResult(success=True, copy_count=count)
