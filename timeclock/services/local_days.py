from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.local_days")

DEFAULT_TIMEZONE = "Europe/Madrid"


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except ZoneInfoNotFoundError:
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_day_of(ts_utc: datetime) -> date:
    return normalize_ts(ts_utc).astimezone(attendance_timezone()).date()


def local_day_start(day_date: date) -> datetime:
    """Local midnight of ``day_date`` as an aware datetime in the attendance timezone."""
    return datetime.combine(day_date, time.min, tzinfo=attendance_timezone())


def local_day_bounds_utc(day_date: date) -> tuple[datetime, datetime]:
    local_start = local_day_start(day_date)
    local_end = datetime.combine(day_date + timedelta(days=1), time.min, tzinfo=attendance_timezone())
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def minutes_to_utc(day_start: datetime, minutes: float) -> datetime:
    # Wall-clock arithmetic on the local midnight, so 780 is 13:00 local even on DST days.
    return (day_start + timedelta(minutes=minutes)).astimezone(timezone.utc)


def format_minutes(minutes: float) -> str:
    total = int(minutes)
    return f"{total // 60}:{total % 60:02d}"
