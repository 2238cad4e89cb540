from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from . import dates
from .records import get_profile, list_slip_ups


@dataclass(frozen=True)
class StreakSnapshot:
    days_sober: int
    journey_start_date: date
    current_streak_start_date: date
    has_slip_ups: bool
    journey_days: int = 0
    most_recent_slip_up: Optional[Any] = None


_EPOCH = dates.to_utc(datetime.min)


def _restart_key(slip_up):
    created = getattr(slip_up, "created_at", None)
    created = dates.to_utc(created) if isinstance(created, datetime) else _EPOCH
    return (
        dates.to_date(slip_up.recovery_restart_date),
        created,
        getattr(slip_up, "id", None) or 0,
    )


def select_most_recent_slip_up(slip_ups: Iterable[Any]):
    """The slip-up with the latest restart date; latest recorded wins ties."""
    candidates = [s for s in slip_ups if getattr(s, "recovery_restart_date", None)]
    if not candidates:
        return None
    return max(candidates, key=_restart_key)


def calculate_streak(
    sobriety_date,
    slip_ups: Iterable[Any] = (),
    timezone: str = "UTC",
    now: Optional[datetime] = None,
) -> Optional[StreakSnapshot]:
    """
    Derive days sober from the journey start and the slip-up log.

    The journey start never moves; the current streak is counted from the most
    recent recovery restart when there is one. Returns None while the sobriety
    date is unset.
    """
    journey_start = dates.to_date(sobriety_date)
    if journey_start is None:
        return None

    now = now or dates.now()
    latest = select_most_recent_slip_up(slip_ups)
    if latest is not None:
        streak_start = dates.to_date(latest.recovery_restart_date)
    else:
        streak_start = journey_start

    return StreakSnapshot(
        # Future anchors (clock skew, time travel) clamp to zero
        days_sober=max(0, dates.days_between(streak_start, now, timezone)),
        journey_start_date=journey_start,
        current_streak_start_date=streak_start,
        has_slip_ups=latest is not None,
        journey_days=max(0, dates.days_between(journey_start, now, timezone)),
        most_recent_slip_up=latest,
    )


def milestone_badge(days_sober: int) -> str:
    """Headline badge for the dashboard counter."""
    if days_sober >= 365:
        years = days_sober // 365
        return f"{years} Year{'s' if years > 1 else ''}"
    if days_sober >= 180:
        return "6 Months"
    if days_sober >= 90:
        return "90 Days"
    if days_sober >= 30:
        return "30 Days"
    if days_sober >= 7:
        return "1 Week"
    if days_sober >= 1:
        return "24 Hours"
    return "< 24 Hours"


def get_streak_snapshot(user_id: int, db: Session, time_travel_days: int = 0, now: Optional[datetime] = None):
    """Load the profile and slip-ups for `user_id` and compute its snapshot."""
    profile = get_profile(user_id, db)
    if not profile:
        return None
    zone = dates.resolve_timezone(profile)
    current = dates.now(time_travel_days, reference=now)
    return calculate_streak(profile.sobriety_date, list_slip_ups(user_id, db), zone, current)
