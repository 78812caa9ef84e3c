"""Organization timezone helpers (DST-safe, via zoneinfo)."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "UTC"


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    """ZoneInfo for an org timezone; unknown names fall back to UTC."""
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_day_bounds(day: date, tz_name: str | None) -> tuple[datetime, datetime]:
    """UTC [start, end) of one calendar day in the given timezone."""
    zone = resolve_timezone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def previous_local_day(now: datetime, tz_name: str | None) -> date:
    """The calendar day before `now`, as seen in the given timezone."""
    return now.astimezone(resolve_timezone(tz_name)).date() - timedelta(days=1)
