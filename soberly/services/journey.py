"""
Thin adapters between the host application and the engine.

Each call reads one consistent snapshot from the store, runs the pure
calculators, and writes the resulting milestone plan back one record at a
time. Callers must serialize calls for the same user.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import dates, records
from .meetings import MEETING_TYPES, calculate_meeting_stats, plan_meeting_milestones
from .milestones import SOBRIETY, MilestonePlan, plan_sobriety_milestones
from .streak import calculate_streak, milestone_badge
from .timeline import TimelineEntry, compose_timeline
from .validation import validate_meeting, validate_slip_up

logger = logging.getLogger(__name__)


def _load_profile(user_id: int, db: Session):
    profile = records.get_profile(user_id, db)
    if not profile:
        raise ValueError("Profile not found")
    return profile


def _audit(user_id: int, event_type: str, meta: dict, db: Session) -> None:
    """Audit rows are best effort; the milestone write they describe has already committed."""
    try:
        records.add_audit(user_id, event_type, meta, db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Audit '{event_type}' failed for user {user_id}: {e}")


def apply_milestone_plan(user_id: int, plan: MilestonePlan, db: Session) -> Dict[str, int]:
    """
    Persist a plan. Deletes run first so a re-dated milestone can be
    re-inserted under the unique (user, type, value) key. A failed write is
    logged and skipped; the rest of the plan still runs.
    """
    result = {"inserted": 0, "deleted": 0, "failed": 0}

    for record in plan.to_delete:
        mtype, value = record.milestone_type, record.milestone_value
        try:
            records.delete_milestone(user_id, mtype, value, db)
        except SQLAlchemyError as e:
            db.rollback()
            result["failed"] += 1
            logger.error(f"Milestone delete failed for user {user_id} ({mtype}, {value}): {e}")
            continue
        result["deleted"] += 1
        _audit(user_id, "milestone_deleted", {"milestone_type": mtype, "milestone_value": value}, db)

    for planned in plan.to_insert:
        try:
            records.insert_milestone(
                user_id,
                planned.milestone_type,
                planned.milestone_value,
                planned.achieved_at,
                db,
                streak_start_date=planned.streak_start_date,
            )
        except SQLAlchemyError as e:
            db.rollback()
            result["failed"] += 1
            logger.error(
                f"Milestone insert failed for user {user_id} "
                f"({planned.milestone_type}, {planned.milestone_value}): {e}"
            )
            continue
        result["inserted"] += 1
        _audit(user_id, "milestone_earned", {
            "milestone_type": planned.milestone_type,
            "milestone_value": planned.milestone_value,
            "achieved_at": planned.achieved_at.isoformat(),
        }, db)

    if not plan.is_empty:
        logger.info(f"Milestones reconciled for user {user_id}: {result}")
    return result


def refresh_sobriety_milestones(user_id: int, db: Session, time_travel_days: int = 0,
                                now: Optional[datetime] = None) -> Dict[str, int]:
    profile = _load_profile(user_id, db)
    zone = dates.resolve_timezone(profile)
    current = dates.now(time_travel_days, reference=now)
    slip_ups = records.list_slip_ups(user_id, db)

    snapshot = calculate_streak(profile.sobriety_date, slip_ups, zone, current)
    existing = records.list_milestones(user_id, db, [SOBRIETY])
    plan = plan_sobriety_milestones(snapshot, existing, slip_ups, zone, current)
    return apply_milestone_plan(user_id, plan, db)


def refresh_meeting_milestones(user_id: int, db: Session, time_travel_days: int = 0,
                               now: Optional[datetime] = None) -> Dict[str, int]:
    profile = _load_profile(user_id, db)
    zone = dates.resolve_timezone(profile)
    current = dates.now(time_travel_days, reference=now)

    existing = records.list_milestones(user_id, db, MEETING_TYPES)
    plan = plan_meeting_milestones(records.list_meetings(user_id, db), existing, zone, current)
    return apply_milestone_plan(user_id, plan, db)


def record_slip_up(
    user_id: int,
    slip_up_date,
    db: Session,
    *,
    recovery_restart_date=None,
    notes: Optional[str] = None,
    notify: Optional[Callable[[Any], None]] = None,
    time_travel_days: int = 0,
    now: Optional[datetime] = None,
):
    """
    Record a slip-up and restart the current streak.

    Raises ValidationError for future dates before anything is written.
    `notify` is the caller's hook for telling sponsors; its failure is logged
    and does not undo the slip-up.
    """
    profile = _load_profile(user_id, db)
    zone = dates.resolve_timezone(profile)
    current = dates.now(time_travel_days, reference=now)
    slip_day, restart_day = validate_slip_up(slip_up_date, recovery_restart_date, zone, current)

    slip_up = records.insert_slip_up(user_id, slip_day, restart_day, db, notes=(notes or "").strip() or None)
    records.add_audit(user_id, "slip_up_recorded", {
        "slip_up_id": slip_up.id,
        "slip_up_date": slip_day.isoformat(),
        "recovery_restart_date": restart_day.isoformat(),
    }, db)

    if notify is not None:
        try:
            notify(slip_up)
        except Exception as e:
            logger.warning(f"Slip-up notification failed for user {user_id}: {e}")

    refresh_sobriety_milestones(user_id, db, time_travel_days, now=now)
    return slip_up


def remove_slip_up(user_id: int, slip_up_id: int, db: Session, time_travel_days: int = 0,
                   now: Optional[datetime] = None) -> Dict[str, int]:
    slip_up = records.get_slip_up(slip_up_id, db)
    if not slip_up or slip_up.user_id != user_id:
        raise ValueError("Slip-up not found")
    records.delete_slip_up(slip_up_id, db)
    records.add_audit(user_id, "slip_up_deleted", {"slip_up_id": slip_up_id}, db)
    return refresh_sobriety_milestones(user_id, db, time_travel_days, now=now)


def log_meeting(
    user_id: int,
    meeting_name: str,
    attended_at: datetime,
    db: Session,
    *,
    meeting_type: str = "other",
    location: Optional[str] = None,
    notes: Optional[str] = None,
    time_travel_days: int = 0,
    now: Optional[datetime] = None,
):
    _load_profile(user_id, db)
    current = dates.now(time_travel_days, reference=now)
    name = validate_meeting(meeting_name, attended_at, current)

    meeting = records.insert_meeting(
        user_id, name, attended_at, db,
        meeting_type=meeting_type,
        location=(location or "").strip() or None,
        notes=(notes or "").strip() or None,
    )
    records.add_audit(user_id, "meeting_logged", {"meeting_id": meeting.id}, db)
    refresh_meeting_milestones(user_id, db, time_travel_days, now=now)
    return meeting


def remove_meeting(user_id: int, meeting_id: int, db: Session, time_travel_days: int = 0,
                   now: Optional[datetime] = None) -> Dict[str, int]:
    meeting = records.get_meeting(meeting_id, db)
    if not meeting or meeting.user_id != user_id:
        raise ValueError("Meeting not found")
    records.delete_meeting(meeting_id, db)
    records.add_audit(user_id, "meeting_deleted", {"meeting_id": meeting_id}, db)
    return refresh_meeting_milestones(user_id, db, time_travel_days, now=now)


def get_journey_timeline(user_id: int, db: Session) -> List[TimelineEntry]:
    profile = _load_profile(user_id, db)
    return compose_timeline(
        profile.sobriety_date,
        slip_ups=records.list_slip_ups(user_id, db),
        milestones=records.list_milestones(user_id, db),
        task_completions=records.list_task_completions(user_id, db),
        meetings=records.list_meetings(user_id, db),
        timezone=dates.resolve_timezone(profile),
    )


def get_journey_summary(user_id: int, db: Session, time_travel_days: int = 0,
                        now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """
    Headline numbers for the home and journey screens.

    Returns None until a sobriety date is set.
    """
    profile = _load_profile(user_id, db)
    zone = dates.resolve_timezone(profile)
    current = dates.now(time_travel_days, reference=now)
    snapshot = calculate_streak(profile.sobriety_date, records.list_slip_ups(user_id, db), zone, current)
    if snapshot is None:
        return None

    meeting_stats = calculate_meeting_stats(records.list_meetings(user_id, db), zone, current)
    return {
        "days_sober": snapshot.days_sober,
        "journey_days": snapshot.journey_days,
        "journey_start_date": snapshot.journey_start_date.isoformat(),
        "current_streak_start_date": snapshot.current_streak_start_date.isoformat(),
        "has_slip_ups": snapshot.has_slip_ups,
        "badge": milestone_badge(snapshot.days_sober),
        "timezone": zone,
        "meetings": {
            "total": meeting_stats.total_count,
            "current_streak": meeting_stats.current_streak,
            "longest_streak": meeting_stats.longest_streak,
            "this_month": meeting_stats.this_month_count,
        },
    }
