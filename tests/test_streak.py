from datetime import date, datetime, timezone
from types import SimpleNamespace

from soberly.models import Profile, SlipUp
from soberly.services.streak import calculate_streak, get_streak_snapshot, milestone_badge, select_most_recent_slip_up

NOW = datetime(2024, 2, 14, 12, 0, tzinfo=timezone.utc)


def _slip_up(id, restart, created_at=None):
    return SimpleNamespace(id=id, slip_up_date=restart, recovery_restart_date=restart, created_at=created_at)


def test_no_slip_ups_uses_journey_start():
    snapshot = calculate_streak(date(2024, 1, 15), [], "UTC", NOW)
    assert snapshot.days_sober == 30
    assert snapshot.journey_days == 30
    assert snapshot.current_streak_start_date == snapshot.journey_start_date == date(2024, 1, 15)
    assert snapshot.has_slip_ups is False
    assert snapshot.most_recent_slip_up is None


def test_most_recent_restart_anchors_streak():
    slip_ups = [_slip_up(1, "2024-01-20"), _slip_up(2, "2024-02-10"), _slip_up(3, "2024-01-30")]
    snapshot = calculate_streak("2024-01-15", slip_ups, "UTC", NOW)
    assert snapshot.current_streak_start_date == date(2024, 2, 10)
    assert snapshot.journey_start_date == date(2024, 1, 15)
    assert snapshot.days_sober == 4
    assert snapshot.journey_days == 30
    assert snapshot.has_slip_ups is True
    assert snapshot.most_recent_slip_up.id == 2


def test_restart_tie_goes_to_latest_recorded():
    older = _slip_up(7, "2024-02-10", datetime(2024, 2, 10, 8, 0, tzinfo=timezone.utc))
    newer = _slip_up(3, "2024-02-10", datetime(2024, 2, 11, 8, 0, tzinfo=timezone.utc))
    assert select_most_recent_slip_up([newer, older]) is newer
    assert select_most_recent_slip_up([older, newer]) is newer
    assert select_most_recent_slip_up([]) is None


def test_days_sober_never_negative():
    snapshot = calculate_streak("2024-01-15", [_slip_up(1, "2024-03-01")], "UTC", NOW)
    assert snapshot.days_sober == 0
    future_start = calculate_streak("2024-06-01", [], "UTC", NOW)
    assert future_start.days_sober == 0
    assert future_start.journey_days == 0


def test_restart_today_is_day_zero():
    snapshot = calculate_streak("2024-01-15", [_slip_up(1, "2024-02-14")], "UTC", NOW)
    assert snapshot.days_sober == 0


def test_unset_sobriety_date_returns_none():
    assert calculate_streak(None, [], "UTC", NOW) is None
    assert calculate_streak("", [], "UTC", NOW) is None


def test_day_count_follows_user_midnight():
    # 06:00 UTC on the 14th is still the 13th in Los Angeles
    early = datetime(2024, 2, 14, 6, 0, tzinfo=timezone.utc)
    assert calculate_streak("2024-01-15", [], "America/Los_Angeles", early).days_sober == 29
    assert calculate_streak("2024-01-15", [], "UTC", early).days_sober == 30


def test_milestone_badge():
    assert milestone_badge(0) == "< 24 Hours"
    assert milestone_badge(1) == "24 Hours"
    assert milestone_badge(8) == "1 Week"
    assert milestone_badge(45) == "30 Days"
    assert milestone_badge(100) == "90 Days"
    assert milestone_badge(200) == "6 Months"
    assert milestone_badge(365) == "1 Year"
    assert milestone_badge(800) == "2 Years"


def test_get_streak_snapshot_reads_store(db):
    db.add(Profile(user_id=1, sobriety_date=date(2024, 1, 15), timezone="UTC"))
    db.add(SlipUp(user_id=1, slip_up_date=date(2024, 2, 9), recovery_restart_date=date(2024, 2, 10)))
    db.commit()

    snapshot = get_streak_snapshot(1, db, now=NOW)
    assert snapshot.current_streak_start_date == date(2024, 2, 10)
    assert snapshot.days_sober == 4
    assert get_streak_snapshot(99, db, now=NOW) is None
