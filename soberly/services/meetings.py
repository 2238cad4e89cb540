"""
Meeting attendance streaks and meeting milestones.

Meetings are grouped by the user's local calendar date: several meetings on
one day count once toward the streak, but each counts toward totals.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from . import dates
from .milestones import MilestonePlan, Threshold, reconcile

MEETING_COUNT = "meeting_count"
MEETING_STREAK = "meeting_streak"
MEETING_MONTHLY = "meeting_monthly"
MEETING_TYPES = (MEETING_COUNT, MEETING_STREAK, MEETING_MONTHLY)

MEETING_COUNT_MILESTONES = [1, 5, 10, 25, 50, 100]
MEETING_STREAK_MILESTONES = [7, 30]
MEETING_MONTHLY_MILESTONES = [10, 20, 30]

MEETING_THRESHOLDS: List[Threshold] = (
    [Threshold(MEETING_COUNT, n, "First Meeting!" if n == 1 else f"{n} Meetings") for n in MEETING_COUNT_MILESTONES]
    + [Threshold(MEETING_STREAK, n, f"{n}-Day Streak!") for n in MEETING_STREAK_MILESTONES]
    + [Threshold(MEETING_MONTHLY, n, f"{n} Meetings This Month") for n in MEETING_MONTHLY_MILESTONES]
)


@dataclass(frozen=True)
class MeetingStats:
    total_count: int
    current_streak: int
    longest_streak: int
    this_month_count: int


def _attended(meetings: Iterable[Any], timezone: str, now: datetime) -> List[Tuple[datetime, date]]:
    """(utc instant, local date) for meetings up to `now`, oldest first."""
    cutoff = dates.to_utc(now)
    attended = []
    for meeting in meetings:
        at = getattr(meeting, "attended_at", None)
        if at is None:
            continue
        at = dates.to_utc(at)
        if at > cutoff:
            continue
        attended.append((at, dates.local_date(at, timezone)))
    attended.sort(key=lambda pair: pair[0])
    return attended


def attendance_days(meetings: Iterable[Any], timezone: str = "UTC", now: Optional[datetime] = None) -> Set[date]:
    now = now or dates.now()
    return {day for _, day in _attended(meetings, timezone, now)}


def calculate_meeting_streak(meetings: Iterable[Any], timezone: str = "UTC", now: Optional[datetime] = None) -> int:
    """
    Consecutive days with at least one meeting, ending today or yesterday.

    Yesterday is a grace day so the streak does not drop to zero before
    today's meeting has been logged.
    """
    now = now or dates.now()
    days = attendance_days(meetings, timezone, now)
    if not days:
        return 0

    today = dates.local_date(now, timezone)
    yesterday = today - timedelta(days=1)
    if today not in days and yesterday not in days:
        return 0

    check = today if today in days else yesterday
    streak = 0
    while check in days:
        streak += 1
        check -= timedelta(days=1)
    return streak


def _runs(days: Iterable[date]):
    """Yield (day, run length ending at that day) in date order."""
    previous = None
    run = 0
    for day in sorted(days):
        run = run + 1 if previous is not None and (day - previous).days == 1 else 1
        previous = day
        yield day, run


def longest_streak(days: Iterable[date]) -> int:
    return max((run for _, run in _runs(days)), default=0)


def calculate_meeting_stats(meetings: Iterable[Any], timezone: str = "UTC", now: Optional[datetime] = None) -> MeetingStats:
    now = now or dates.now()
    meetings = list(meetings)
    attended = _attended(meetings, timezone, now)
    today = dates.local_date(now, timezone)
    return MeetingStats(
        total_count=len(attended),
        current_streak=calculate_meeting_streak(meetings, timezone, now),
        longest_streak=longest_streak({day for _, day in attended}),
        this_month_count=sum(1 for _, day in attended if (day.year, day.month) == (today.year, today.month)),
    )


def plan_meeting_milestones(
    meetings: Iterable[Any],
    existing: Iterable[Any],
    timezone: str = "UTC",
    now: Optional[datetime] = None,
    thresholds: Sequence[Threshold] = MEETING_THRESHOLDS,
) -> MilestonePlan:
    """
    Reconcile count, streak and monthly meeting milestones.

    A milestone is dated on the day it was first crossed. Records whose
    threshold is no longer reachable (a meeting was deleted) are removed.
    """
    now = now or dates.now()
    local_days = [day for _, day in _attended(meetings, timezone, now)]

    by_month = OrderedDict()
    for day in local_days:
        by_month.setdefault((day.year, day.month), []).append(day)

    def count_reached(n: int) -> Optional[date]:
        return local_days[n - 1] if len(local_days) >= n else None

    def streak_reached(n: int) -> Optional[date]:
        for day, run in _runs(set(local_days)):
            if run >= n:
                return day
        return None

    def monthly_reached(n: int) -> Optional[date]:
        for month_days in by_month.values():
            if len(month_days) >= n:
                return month_days[n - 1]
        return None

    reached_by_type = {
        MEETING_COUNT: count_reached,
        MEETING_STREAK: streak_reached,
        MEETING_MONTHLY: monthly_reached,
    }

    def achieved_on(threshold: Threshold) -> Optional[date]:
        reached = reached_by_type.get(threshold.milestone_type)
        return reached(threshold.value) if reached else None

    def is_stale(record, threshold: Threshold) -> bool:
        return achieved_on(threshold) is None

    meeting_records = [r for r in existing if r.milestone_type in MEETING_TYPES]
    return reconcile(thresholds, meeting_records, achieved_on, is_stale)
