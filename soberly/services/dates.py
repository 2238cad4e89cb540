"""
Date and timezone normalization.

Stored calendar dates (YYYY-MM-DD) are interpreted at local midnight in the
user's timezone, so day counts change at the user's midnight rather than UTC
midnight. Every calculator gets "now" from `now()`, which applies the
developer time-travel offset explicitly instead of reading ambient state.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .. import config

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"

DateLike = Union[date, datetime, str]


def get_zone(zone_id: Optional[str]) -> ZoneInfo:
    """Return a ZoneInfo for `zone_id`, falling back to UTC when it is unusable."""
    if not zone_id:
        return ZoneInfo(config.DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(zone_id)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning(f"Unknown timezone '{zone_id}', falling back to {config.DEFAULT_TIMEZONE}")
        return ZoneInfo(config.DEFAULT_TIMEZONE)


def is_valid_timezone(zone_id: Optional[str]) -> bool:
    if not zone_id or not str(zone_id).strip():
        return False
    try:
        ZoneInfo(str(zone_id).strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def resolve_timezone(profile) -> str:
    """
    Pick the timezone used for a user's calculations.

    Uses the profile's stored timezone when it is set and valid, otherwise the
    device timezone, otherwise UTC.
    """
    raw = (getattr(profile, "timezone", None) or "").strip() if profile is not None else ""
    if raw and is_valid_timezone(raw):
        return raw
    if raw:
        logger.warning(f"Profile timezone '{raw}' is invalid, using device timezone")
    if is_valid_timezone(config.DEVICE_TIMEZONE):
        return config.DEVICE_TIMEZONE
    return config.DEFAULT_TIMEZONE


def to_utc(moment: datetime) -> datetime:
    """Naive datetimes are treated as UTC (that is how they are stored)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_date(value: Optional[DateLike]) -> Optional[date]:
    """
    Coerce a stored date value to `date`.

    Raises:
        ValueError: if a string is not a YYYY-MM-DD calendar date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # Accept full ISO timestamps by keeping the date part
    return datetime.strptime(text[:10], DATE_FORMAT).date()


def parse_date_as_local(date_string: DateLike, zone_id: Optional[str]) -> datetime:
    """Interpret a bare calendar date as midnight in `zone_id` (not UTC midnight)."""
    day = to_date(date_string)
    if day is None:
        raise ValueError("A calendar date is required")
    return datetime.combine(day, time.min, tzinfo=get_zone(zone_id))


def local_date(moment: datetime, zone_id: Optional[str]) -> date:
    return to_utc(moment).astimezone(get_zone(zone_id)).date()


def format_date_with_timezone(moment: DateLike, zone_id: Optional[str]) -> str:
    """Format an instant as the YYYY-MM-DD date it falls on in `zone_id`."""
    if isinstance(moment, datetime):
        return local_date(moment, zone_id).strftime(DATE_FORMAT)
    day = to_date(moment)
    if day is None:
        raise ValueError("A calendar date is required")
    return day.strftime(DATE_FORMAT)


def now(time_travel_days: int = 0, reference: Optional[datetime] = None) -> datetime:
    """
    Current instant in UTC shifted by `time_travel_days` whole days.

    `reference` replaces the wall clock (tests, replays). The offset is ignored
    when time travel is disabled for this environment.
    """
    current = to_utc(reference) if reference is not None else datetime.now(timezone.utc)
    if time_travel_days:
        if not config.TIME_TRAVEL_ENABLED:
            logger.warning(f"Time travel of {time_travel_days} days ignored in {config.APP_ENV}")
            return current
        current = current + timedelta(days=int(time_travel_days))
    return current


def days_between(start: DateLike, end: DateLike, zone_id: Optional[str]) -> int:
    """
    Signed number of calendar days from `start` to `end` in `zone_id`.

    Bare dates are taken as-is; instants are first projected onto the local
    calendar, so the count increments at local midnight.
    """
    start_day = local_date(start, zone_id) if isinstance(start, datetime) else to_date(start)
    end_day = local_date(end, zone_id) if isinstance(end, datetime) else to_date(end)
    return (end_day - start_day).days
