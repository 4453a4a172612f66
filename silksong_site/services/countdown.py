from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from ..config import get_settings
from ..models.subscription import utcnow


@dataclass
class Countdown:
    release_date: datetime
    released: bool
    days: int
    hours: int
    minutes: int
    seconds: int
    total_seconds: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["release_date"] = self.release_date.isoformat()
        return data


def get_countdown(now: Optional[datetime] = None, release_date: Optional[datetime] = None) -> Countdown:
    """Time left until release, all zeros once the date has passed."""
    now = now or utcnow()
    release_date = release_date or get_settings().release_date

    remaining = max(0, int((release_date - now).total_seconds()))
    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    return Countdown(
        release_date=release_date,
        released=remaining == 0,
        days=days,
        hours=hours,
        minutes=minutes,
        seconds=seconds,
        total_seconds=remaining,
    )
