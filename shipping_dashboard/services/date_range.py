from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import pytz


@dataclass(frozen=True)
class DateRange:
    start_date: str
    end_date: str

    @property
    def key(self) -> str:
        return f"{self.start_date}_{self.end_date}"


def reference_today(timezone_name: str, now: Optional[datetime] = None) -> date:
    """Calendar date of ``now`` (default: current instant) in the reference timezone."""
    tz = pytz.timezone(timezone_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(tz).date()


def get_range_params(days: int, timezone_name: str, now: Optional[datetime] = None) -> DateRange:
    """Inclusive range of ``days`` calendar days ending today in the reference timezone."""
    days = max(1, int(days))
    end = reference_today(timezone_name, now)
    start = end - timedelta(days=days - 1)
    return DateRange(start_date=start.isoformat(), end_date=end.isoformat())


def exclusive_bounds(start_date: str, end_date: str) -> tuple:
    """Convert an inclusive range into the (after, before) pair the shipping API expects."""
    start = date.fromisoformat(start_date)
    end = date.fromisoformat(end_date)
    after = start - timedelta(days=1)
    before = end + timedelta(days=1)
    return after.isoformat(), before.isoformat()
