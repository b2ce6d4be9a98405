from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from assistline.core.settings import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive timestamps; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def salon_zone(name: Optional[str] = None) -> ZoneInfo:
    tz_name = name or get_settings().timezone
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_window_end(request_date: date, end_time: time, *, tz_name: Optional[str] = None) -> datetime:
    """UTC instant at which a request window closes in the salon time zone."""
    local = datetime.combine(request_date, end_time).replace(tzinfo=salon_zone(tz_name))
    return local.astimezone(timezone.utc)


def window_has_passed(
    request_date: date,
    end_time: time,
    *,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
) -> bool:
    current = ensure_aware_utc(now) if now is not None else utcnow()
    return local_window_end(request_date, end_time, tz_name=tz_name) <= current


def windows_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open overlap test; touching boundaries do not overlap."""
    return start_a < end_b and end_a > start_b


__all__ = [
    "utcnow",
    "ensure_aware_utc",
    "salon_zone",
    "local_window_end",
    "window_has_passed",
    "windows_overlap",
]
