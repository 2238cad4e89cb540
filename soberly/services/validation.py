from datetime import datetime
from typing import Optional

from . import dates


class ValidationError(ValueError):
    """Input rejected before any state change; `str(err)` is safe to show the user."""


def validate_slip_up(slip_up_date, recovery_restart_date, timezone: str, now: datetime):
    """
    Check a slip-up before it is recorded.

    Both dates are calendar dates in the user's timezone and may not be later
    than today (time travel already applied to `now`).

    Returns:
        (slip_up_date, recovery_restart_date) as `date` objects
    """
    try:
        slip_day = dates.to_date(slip_up_date)
        restart_day = dates.to_date(recovery_restart_date) if recovery_restart_date else slip_day
    except ValueError:
        raise ValidationError("Please enter dates as YYYY-MM-DD.")

    if slip_day is None:
        raise ValidationError("Slip-up date is required.")

    today = dates.local_date(now, timezone)
    if slip_day > today:
        raise ValidationError("Slip-up date cannot be in the future.")
    if restart_day > today:
        raise ValidationError("Recovery restart date cannot be in the future.")
    if restart_day < slip_day:
        raise ValidationError("Recovery restart date cannot be before the slip-up date.")
    return slip_day, restart_day


def validate_meeting(meeting_name: Optional[str], attended_at: Optional[datetime], now: datetime) -> str:
    """Returns the cleaned meeting name."""
    name = (meeting_name or "").strip()
    if not name:
        raise ValidationError("Meeting name is required.")
    if attended_at is None:
        raise ValidationError("Meeting time is required.")
    if dates.to_utc(attended_at) > dates.to_utc(now):
        raise ValidationError("Meeting date cannot be in the future.")
    return name
