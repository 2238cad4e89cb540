"""
Milestone thresholds and reconciliation.

Reconciliation compares the thresholds a user has reached right now with the
milestone records already persisted and produces a plan: records to insert and
records to delete. It never writes; `journey.apply_milestone_plan` does.

Sobriety milestones remember the streak start they were measured from. A
milestone earned in an earlier streak stays in the user's history after a
slip-up. A record is removed when its anchor disappeared (the slip-up that
started that streak was deleted) or it is not reachable yet. A backdated
slip-up also un-earns records dated on or after the new streak start that the
new streak has not reached.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import dates
from .streak import StreakSnapshot

SOBRIETY = "sobriety"


@dataclass(frozen=True)
class Threshold:
    milestone_type: str
    value: int
    label: str
    # Day offset from the streak start; only used for day-based milestones
    days: Optional[int] = None

    @property
    def key(self) -> Tuple[str, int]:
        return (self.milestone_type, self.value)


SOBRIETY_THRESHOLDS: List[Threshold] = [
    Threshold(SOBRIETY, 1, "24 Hours Sober", days=1),
    Threshold(SOBRIETY, 7, "1 Week Sober", days=7),
    Threshold(SOBRIETY, 30, "30 Days Sober", days=30),
    Threshold(SOBRIETY, 60, "60 Days Sober", days=60),
    Threshold(SOBRIETY, 90, "90 Days Sober", days=90),
    Threshold(SOBRIETY, 180, "6 Months Sober", days=180),
    Threshold(SOBRIETY, 365, "1 Year Sober", days=365),
    Threshold(SOBRIETY, 730, "2 Years Sober", days=730),
    Threshold(SOBRIETY, 1095, "3 Years Sober", days=1095),
]


@dataclass(frozen=True)
class PlannedMilestone:
    milestone_type: str
    milestone_value: int
    achieved_at: date
    label: str
    streak_start_date: Optional[date] = None


@dataclass
class MilestonePlan:
    to_insert: List[PlannedMilestone] = field(default_factory=list)
    to_delete: List[Any] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_insert and not self.to_delete


def threshold_index(thresholds: Iterable[Threshold]) -> Dict[Tuple[str, int], Threshold]:
    return {t.key: t for t in thresholds}


def label_for(milestone_type: str, milestone_value: int, thresholds: Iterable[Threshold]) -> str:
    threshold = threshold_index(thresholds).get((milestone_type, milestone_value))
    if threshold:
        return threshold.label
    return f"{milestone_value} ({milestone_type})"


def reconcile(
    thresholds: Sequence[Threshold],
    existing: Iterable[Any],
    achieved_on: Callable[[Threshold], Optional[date]],
    is_stale: Callable[[Any, Threshold], bool],
    streak_start_date: Optional[date] = None,
) -> MilestonePlan:
    """
    Plan inserts and deletes for one family of milestones.

    Args:
        thresholds: ordered threshold table
        existing: persisted records (milestone_type, milestone_value, achieved_at)
        achieved_on: date a threshold was crossed, or None if not reached
        is_stale: whether a persisted record must be removed
        streak_start_date: anchor stored on inserted records

    Returns:
        MilestonePlan; records of thresholds not in the table are left alone
    """
    index = threshold_index(thresholds)
    plan = MilestonePlan()
    surviving = set()

    for record in existing:
        key = (record.milestone_type, record.milestone_value)
        threshold = index.get(key)
        if threshold is None:
            continue
        if is_stale(record, threshold):
            plan.to_delete.append(record)
        else:
            surviving.add(key)

    for threshold in thresholds:
        if threshold.key in surviving:
            continue
        achieved = achieved_on(threshold)
        if achieved is None:
            continue
        plan.to_insert.append(PlannedMilestone(
            milestone_type=threshold.milestone_type,
            milestone_value=threshold.value,
            achieved_at=achieved,
            label=threshold.label,
            streak_start_date=streak_start_date,
        ))
        # At most one record per (type, value)
        surviving.add(threshold.key)

    return plan


def record_anchor(record, threshold: Threshold) -> Optional[date]:
    """Streak start a sobriety record was measured from (inferred for legacy rows)."""
    anchor = dates.to_date(getattr(record, "streak_start_date", None))
    if anchor is not None:
        return anchor
    achieved = dates.to_date(record.achieved_at)
    if achieved is None or threshold.days is None:
        return None
    return achieved - timedelta(days=threshold.days)


def plan_sobriety_milestones(
    snapshot: Optional[StreakSnapshot],
    existing: Iterable[Any],
    slip_ups: Iterable[Any] = (),
    timezone: str = "UTC",
    now: Optional[datetime] = None,
    thresholds: Sequence[Threshold] = SOBRIETY_THRESHOLDS,
) -> MilestonePlan:
    if snapshot is None:
        return MilestonePlan()

    now = now or dates.now()
    today = dates.local_date(now, timezone)
    streak_start = snapshot.current_streak_start_date
    days_since_start = dates.days_between(streak_start, now, timezone)

    valid_anchors = {snapshot.journey_start_date, streak_start}
    for slip_up in slip_ups:
        restart = dates.to_date(getattr(slip_up, "recovery_restart_date", None))
        if restart is not None:
            valid_anchors.add(restart)

    def achieved_on(threshold: Threshold) -> Optional[date]:
        if threshold.days is None or threshold.days > days_since_start:
            return None
        return streak_start + timedelta(days=threshold.days)

    def is_stale(record, threshold: Threshold) -> bool:
        achieved = dates.to_date(record.achieved_at)
        anchor = record_anchor(record, threshold)
        if achieved is None or anchor not in valid_anchors:
            return True
        if achieved > today:
            return True
        # Earned on or after the current restart but not reached by this streak
        if achieved >= streak_start and threshold.days is not None and threshold.days > days_since_start:
            return True
        if anchor == streak_start and threshold.days is not None:
            return achieved != streak_start + timedelta(days=threshold.days)
        return False

    sobriety_records = [r for r in existing if r.milestone_type == SOBRIETY]
    return reconcile(thresholds, sobriety_records, achieved_on, is_stale, streak_start_date=streak_start)
