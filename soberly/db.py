import logging

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if "sqlite" in DATABASE_URL else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def init_db(bind=None):
    from . import models
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    ensure_schema(bind)

def ensure_schema(bind=None):
    """Idempotent schema migration: safely add columns if they don't exist."""
    bind = bind or engine
    try:
        with bind.connect() as conn:
            inspector = inspect(conn)

            # Profile: timezone (older rows relied on the device zone only)
            if inspector.has_table('profiles'):
                profile_cols = [c['name'] for c in inspector.get_columns('profiles')]
                if 'timezone' not in profile_cols:
                    conn.execute(text("ALTER TABLE profiles ADD COLUMN timezone VARCHAR NULL"))
                conn.commit()

            # Milestones: era anchor for sobriety milestones
            if inspector.has_table('user_milestones'):
                milestone_cols = [c['name'] for c in inspector.get_columns('user_milestones')]
                if 'streak_start_date' not in milestone_cols:
                    conn.execute(text("ALTER TABLE user_milestones ADD COLUMN streak_start_date DATE NULL"))
                conn.commit()

            # MeetingAttendance: meeting_type
            if inspector.has_table('meeting_attendance'):
                meeting_cols = [c['name'] for c in inspector.get_columns('meeting_attendance')]
                if 'meeting_type' not in meeting_cols:
                    conn.execute(text("ALTER TABLE meeting_attendance ADD COLUMN meeting_type VARCHAR DEFAULT 'other'"))
                conn.commit()
    except SQLAlchemyError as e:
        # Tables might be new or DB unavailable; create_all already ran
        logger.warning(f"Schema migration skipped: {e}")