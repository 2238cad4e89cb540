import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Optional

from . import dates
from .meetings import MEETING_THRESHOLDS, MEETING_TYPES
from .milestones import SOBRIETY_THRESHOLDS, label_for

logger = logging.getLogger(__name__)

TASK_COUNT_MILESTONES = [5, 10, 25, 50, 100, 250, 500]


class TimelineKind(str, Enum):
    JOURNEY_START = "journey_start"
    SLIP_UP = "slip_up"
    MILESTONE = "milestone"
    TASK_COMPLETION = "task_completion"
    MEETING = "meeting"


# Lower sorts first among entries sharing a timestamp
KIND_PRIORITY = {
    TimelineKind.MILESTONE: 0,
    TimelineKind.SLIP_UP: 1,
    TimelineKind.TASK_COMPLETION: 2,
    TimelineKind.MEETING: 3,
}


@dataclass(frozen=True)
class TimelineEntry:
    entry_id: str
    kind: TimelineKind
    date: Optional[datetime]
    title: str
    description: str = ""
    payload: Any = field(default=None, compare=False)


def _as_moment(value, timezone: str) -> Optional[datetime]:
    """Timestamps keep their instant; bare dates become local midnight."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return dates.to_utc(value)
    if isinstance(value, date):
        return dates.parse_date_as_local(value, timezone)
    text = str(value).strip()
    try:
        if len(text) > 10:
            return dates.to_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        return dates.parse_date_as_local(text, timezone)
    except ValueError:
        logger.warning(f"Unparseable timeline date '{text}'")
        return None


def _time_label(moment: datetime, timezone: str) -> str:
    local = moment.astimezone(dates.get_zone(timezone))
    return local.strftime("%I:%M %p").lstrip("0")


def _sort_key(entry: TimelineEntry):
    return (-entry.date.timestamp(), KIND_PRIORITY.get(entry.kind, len(KIND_PRIORITY)), entry.entry_id)


def compose_timeline(
    sobriety_date,
    slip_ups: Iterable[Any] = (),
    milestones: Iterable[Any] = (),
    task_completions: Iterable[Any] = (),
    meetings: Iterable[Any] = (),
    timezone: str = "UTC",
) -> List[TimelineEntry]:
    """
    Merge a user's events into one list, most recent first.

    The "journey began" entry is pinned to the end. Entries sharing a
    timestamp are ordered milestone, slip-up, task completion, meeting, then by
    id, so repeated renders are identical. Entries whose date cannot be read
    sort after all dated entries.
    """
    entries: List[TimelineEntry] = []
    thresholds = SOBRIETY_THRESHOLDS + MEETING_THRESHOLDS

    for slip_up in slip_ups:
        entries.append(TimelineEntry(
            entry_id=f"slip-up-{slip_up.id}",
            kind=TimelineKind.SLIP_UP,
            date=_as_moment(slip_up.slip_up_date, timezone),
            title="Slip Up",
            description=slip_up.notes or "Recovery journey restarted",
            payload=slip_up,
        ))

    for record in milestones:
        label = label_for(record.milestone_type, record.milestone_value, thresholds)
        if record.milestone_type in MEETING_TYPES:
            description = "Meeting attendance milestone"
        else:
            description = f"Reached {label} milestone"
        entries.append(TimelineEntry(
            entry_id=f"milestone-{record.milestone_type}-{record.milestone_value}",
            kind=TimelineKind.MILESTONE,
            date=_as_moment(record.achieved_at, timezone),
            title=label,
            description=description,
            payload=record,
        ))

    completed = []
    for task in task_completions:
        moment = _as_moment(task.completed_at, timezone)
        entries.append(TimelineEntry(
            entry_id=f"task-{task.id}",
            kind=TimelineKind.TASK_COMPLETION,
            date=moment,
            title=getattr(task, "title", None) or "Task completed",
            payload=task,
        ))
        if moment is not None:
            completed.append(moment)

    # Task-count milestones are derived, not persisted
    completed.sort()
    for count in TASK_COUNT_MILESTONES:
        if len(completed) < count:
            break
        entries.append(TimelineEntry(
            entry_id=f"task-milestone-{count}",
            kind=TimelineKind.MILESTONE,
            date=completed[count - 1],
            title=f"{count} Tasks Completed",
            description=f"Reached {count} task completion milestone",
            payload={"milestone_count": count},
        ))

    for meeting in meetings:
        moment = _as_moment(meeting.attended_at, timezone)
        details = [getattr(meeting, "location", None), _time_label(moment, timezone) if moment else None]
        entries.append(TimelineEntry(
            entry_id=f"meeting-{meeting.id}",
            kind=TimelineKind.MEETING,
            date=moment,
            title=meeting.meeting_name,
            description=" • ".join(d for d in details if d),
            payload=meeting,
        ))

    dated = sorted((e for e in entries if e.date is not None), key=_sort_key)
    undated = sorted(
        (e for e in entries if e.date is None),
        key=lambda e: (KIND_PRIORITY.get(e.kind, len(KIND_PRIORITY)), e.entry_id),
    )
    timeline = dated + undated

    if sobriety_date:
        timeline.append(TimelineEntry(
            entry_id="sobriety-start",
            kind=TimelineKind.JOURNEY_START,
            date=_as_moment(sobriety_date, timezone),
            title="Recovery Journey Began",
            description="Started your path to recovery",
        ))
    return timeline
