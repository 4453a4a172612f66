"""
Announcement timeline backed by data/timeline.json.
"""
import logging
import re
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from ..errors import ValidationError
from ..schemas.timeline_schema import TimelineEvent
from .content import load_data

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 50

LEADING_INT_RE = re.compile(r"\s*[+-]?\d+")

# Offset is mandatory: a bare local time is rejected
UTC_ISO8601_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$")


@lru_cache(maxsize=1)
def load_timeline() -> List[TimelineEvent]:
    """All events, newest first."""
    events = [TimelineEvent.model_validate(item) for item in load_data("timeline")]
    events.sort(key=lambda event: event.date, reverse=True)
    logger.info(f"Loaded {len(events)} timeline events")
    return events


def clamp_limit(limit: Optional[str]) -> int:
    """
    Leading integer of `limit` ("5abc" -> 5, "2.5" -> 2), clamped to
    MIN_LIMIT..MAX_LIMIT. Values with no leading digits fall back to the default.
    """
    if limit is None:
        return DEFAULT_LIMIT
    match = LEADING_INT_RE.match(limit)
    if not match:
        return DEFAULT_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, int(match.group(0))))


def parse_after(after: str) -> datetime:
    if not UTC_ISO8601_RE.match(after):
        raise ValidationError(message="invalid_after", code="invalid_after")
    try:
        return datetime.fromisoformat(after.replace("Z", "+00:00"))
    except ValueError:
        # e.g. month 13 passes the pattern
        raise ValidationError(message="invalid_after", code="invalid_after")


def get_timeline(after: Optional[str] = None, limit: Optional[str] = None) -> List[TimelineEvent]:
    events = load_timeline()
    if after is not None:
        cutoff = parse_after(after)
        events = [event for event in events if event.date < cutoff]
    return events[:clamp_limit(limit)]
