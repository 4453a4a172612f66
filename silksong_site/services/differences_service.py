"""
Hollow Knight vs Silksong comparison, from data/differences.json and
data/differences-unconfirmed.json.
"""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, List, Optional, Union

from ..models.subscription import utcnow
from ..schemas.difference_schema import DifferenceItem, UnconfirmedItem
from .content import DATA_DIR, load_data

logger = logging.getLogger(__name__)

VALID_STATUSES = ("confirmed", "hinted", "speculated", "unconfirmed")
DIFFERENCE_FILES = ("differences", "differences-unconfirmed")
UNGROUPED = "uncategorized"

Difference = Union[DifferenceItem, UnconfirmedItem]


@lru_cache(maxsize=1)
def load_differences() -> List[Difference]:
    """Sourced differences first, then the unconfirmed expectations."""
    items: List[Difference] = [DifferenceItem.model_validate(item) for item in load_data("differences")]
    items += [UnconfirmedItem.model_validate(item) for item in load_data("differences-unconfirmed")]
    return items


def parse_status_filter(status: Optional[str]) -> Optional[List[str]]:
    """Comma-separated statuses, lowercased; unknown values and repeats are dropped."""
    if not status:
        return None
    statuses = []
    for value in status.split(","):
        value = value.strip().lower()
        if value in VALID_STATUSES and value not in statuses:
            statuses.append(value)
    return statuses


def last_updated() -> datetime:
    """Newest modification time of the two data files."""
    try:
        mtime = max((DATA_DIR / f"{name}.json").stat().st_mtime for name in DIFFERENCE_FILES)
    except OSError as e:
        logger.warning(f"⚠️ Could not read differences file times: {e}")
        return utcnow()
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


def group_items(items: List[Difference]) -> Dict[str, List[Difference]]:
    """Only groups that actually appear, in first-seen order."""
    groups: Dict[str, List[Difference]] = {}
    for item in items:
        groups.setdefault(item.group or UNGROUPED, []).append(item)
    return groups


def get_differences(status: Optional[str] = None, format: Optional[str] = None) -> dict:
    status_filter = parse_status_filter(status)
    items = load_differences()
    # An empty filter (only unknown statuses) keeps everything
    if status_filter:
        items = [item for item in items if item.status in status_filter]

    body: dict = {"updated": last_updated().isoformat(), "total": len(items)}
    if format == "grouped":
        body["groups"] = {
            name: [item.model_dump(exclude_none=True) for item in group]
            for name, group in group_items(items).items()
        }
        body["format"] = "grouped"
    else:
        body["differences"] = [item.model_dump(exclude_none=True) for item in items]
        if format:
            body["format"] = format
    if status_filter is not None:
        body["status_filter"] = status_filter
    return body
