from sqlalchemy import Column, Integer, String, JSON, DateTime, Text, Date, UniqueConstraint
from sqlalchemy.sql import func
from .db import Base

class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, unique=True, index=True)
    display_name = Column(String, nullable=True)
    # Original journey start; never overwritten by a slip-up
    sobriety_date = Column(Date, nullable=True)
    timezone = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class SlipUp(Base):
    __tablename__ = "slip_ups"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True)
    slip_up_date = Column(Date)
    recovery_restart_date = Column(Date)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class MilestoneRecord(Base):
    __tablename__ = "user_milestones"
    __table_args__ = (
        UniqueConstraint("user_id", "milestone_type", "milestone_value", name="uq_user_milestone"),
    )
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True)
    milestone_type = Column(String)
    milestone_value = Column(Integer)
    achieved_at = Column(Date)
    streak_start_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class MeetingAttendance(Base):
    __tablename__ = "meeting_attendance"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True)
    meeting_name = Column(String)
    meeting_type = Column(String, default="other")
    # Stored as UTC
    attended_at = Column(DateTime(timezone=True))
    location = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class TaskCompletion(Base):
    __tablename__ = "task_completions"
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, index=True)
    user_id = Column(Integer, index=True)
    title = Column(String, nullable=True)
    completed_at = Column(DateTime(timezone=True))

class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True)
    event_type = Column(String)
    meta_json = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
