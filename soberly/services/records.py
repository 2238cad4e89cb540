"""
Persistence collaborator for the engine.

Simple predicate reads and single-record writes over a SQLAlchemy session.
The calculators never call these for writes; only the orchestration in
`journey.py` does.
"""

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models import AuditLog, MeetingAttendance, MilestoneRecord, Profile, SlipUp, TaskCompletion
from . import dates


def get_profile(user_id: int, db: Session) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def list_slip_ups(user_id: int, db: Session) -> List[SlipUp]:
    return db.query(SlipUp).filter(SlipUp.user_id == user_id).order_by(
        SlipUp.recovery_restart_date.desc(), SlipUp.id.desc()
    ).all()


def insert_slip_up(user_id: int, slip_up_date, recovery_restart_date, db: Session, notes: Optional[str] = None) -> SlipUp:
    slip_up = SlipUp(
        user_id=user_id,
        slip_up_date=slip_up_date,
        recovery_restart_date=recovery_restart_date,
        notes=notes,
    )
    db.add(slip_up)
    db.commit()
    db.refresh(slip_up)
    return slip_up


def get_slip_up(slip_up_id: int, db: Session) -> Optional[SlipUp]:
    return db.query(SlipUp).filter(SlipUp.id == slip_up_id).first()


def delete_slip_up(slip_up_id: int, db: Session) -> Optional[SlipUp]:
    slip_up = get_slip_up(slip_up_id, db)
    if not slip_up:
        return None
    db.delete(slip_up)
    db.commit()
    return slip_up


def list_milestones(user_id: int, db: Session, milestone_types: Optional[Iterable[str]] = None) -> List[MilestoneRecord]:
    query = db.query(MilestoneRecord).filter(MilestoneRecord.user_id == user_id)
    if milestone_types is not None:
        query = query.filter(MilestoneRecord.milestone_type.in_(list(milestone_types)))
    return query.order_by(MilestoneRecord.achieved_at, MilestoneRecord.id).all()


def insert_milestone(user_id: int, milestone_type: str, milestone_value: int, achieved_at, db: Session,
                     streak_start_date=None) -> MilestoneRecord:
    record = MilestoneRecord(
        user_id=user_id,
        milestone_type=milestone_type,
        milestone_value=milestone_value,
        achieved_at=achieved_at,
        streak_start_date=streak_start_date,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def delete_milestone(user_id: int, milestone_type: str, milestone_value: int, db: Session) -> int:
    matches = db.query(MilestoneRecord).filter(
        MilestoneRecord.user_id == user_id,
        MilestoneRecord.milestone_type == milestone_type,
        MilestoneRecord.milestone_value == milestone_value,
    ).all()
    for record in matches:
        db.delete(record)
    db.commit()
    return len(matches)


def list_meetings(user_id: int, db: Session) -> List[MeetingAttendance]:
    return db.query(MeetingAttendance).filter(MeetingAttendance.user_id == user_id).order_by(
        MeetingAttendance.attended_at.desc()
    ).all()


def insert_meeting(user_id: int, meeting_name: str, attended_at, db: Session, *, meeting_type: str = "other",
                   location: Optional[str] = None, notes: Optional[str] = None) -> MeetingAttendance:
    meeting = MeetingAttendance(
        user_id=user_id,
        meeting_name=meeting_name,
        meeting_type=meeting_type,
        # Columns hold UTC wall time; SQLite drops tzinfo
        attended_at=dates.to_utc(attended_at),
        location=location,
        notes=notes,
    )
    db.add(meeting)
    db.commit()
    db.refresh(meeting)
    return meeting


def get_meeting(meeting_id: int, db: Session) -> Optional[MeetingAttendance]:
    return db.query(MeetingAttendance).filter(MeetingAttendance.id == meeting_id).first()


def delete_meeting(meeting_id: int, db: Session) -> Optional[MeetingAttendance]:
    meeting = get_meeting(meeting_id, db)
    if not meeting:
        return None
    db.delete(meeting)
    db.commit()
    return meeting


def list_task_completions(user_id: int, db: Session) -> List[TaskCompletion]:
    return db.query(TaskCompletion).filter(
        TaskCompletion.user_id == user_id,
        TaskCompletion.completed_at.isnot(None),
    ).order_by(TaskCompletion.completed_at.desc()).all()


def add_audit(user_id: int, event_type: str, meta: dict, db: Session) -> AuditLog:
    audit = AuditLog(user_id=user_id, event_type=event_type, meta_json=meta)
    db.add(audit)
    db.commit()
    return audit
