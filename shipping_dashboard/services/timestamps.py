import re
from datetime import date, datetime, tzinfo
from typing import Any, Optional

import pytz

# datetime.fromisoformat before 3.11 only takes 3 or 6 fraction digits and "+HH:MM" offsets.
_FRACTION = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")
_COMPACT_OFFSET = re.compile(r"(\d{2}:\d{2}(?:\.\d+)?)([+-]\d{2})(\d{2})$")


def _normalize_iso(text: str) -> str:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text, count=1)
    return _COMPACT_OFFSET.sub(r"\1\2:\3", text)


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=pytz.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(_normalize_iso(text))
        except ValueError:
            pass
        numeric = text.replace(".", "", 1)
        if numeric.isdigit():
            try:
                return datetime.fromtimestamp(float(text), tz=pytz.utc)
            except (ValueError, OverflowError, OSError):
                return None
    return None


def parse_timestamp(value: Any, default_tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an API timestamp into an aware datetime.

    Naive values are assumed to be in ``default_tz`` (UTC when not given).
    Returns ``None`` for empty or unparseable input.
    """
    parsed = _parse_iso(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        zone = default_tz or pytz.utc
        if hasattr(zone, "localize"):
            return zone.localize(parsed)
        return parsed.replace(tzinfo=zone)
    return parsed


def day_key(value: Any, tz: Optional[tzinfo] = None) -> Optional[str]:
    """Calendar-day bucket (``YYYY-MM-DD``) for a timestamp.

    Without ``tz`` this is the first ten characters of the value. With ``tz``,
    offset-carrying timestamps are converted into that zone first; date-only
    and naive values keep their written date.
    """
    if not value:
        return None
    text = str(value).strip()
    if tz is None:
        return text[:10]
    parsed = _parse_iso(value)
    if parsed is None or parsed.tzinfo is None:
        return text[:10]
    return parsed.astimezone(tz).date().isoformat()


def parse_day(key: Optional[str]) -> Optional[date]:
    if not key:
        return None
    try:
        return date.fromisoformat(key)
    except ValueError:
        return None
