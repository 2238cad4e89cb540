from datetime import date, datetime, timezone
from types import SimpleNamespace

from soberly.services.milestones import (
    SOBRIETY,
    SOBRIETY_THRESHOLDS,
    Threshold,
    plan_sobriety_milestones,
    reconcile,
)
from soberly.services.streak import calculate_streak

NOW = datetime(2024, 2, 14, 12, 0, tzinfo=timezone.utc)


def _record(value, achieved_at, streak_start_date=None, milestone_type=SOBRIETY):
    return SimpleNamespace(
        milestone_type=milestone_type,
        milestone_value=value,
        achieved_at=achieved_at,
        streak_start_date=streak_start_date,
    )


def _apply(existing, plan):
    kept = [r for r in existing if not any(r is d for d in plan.to_delete)]
    return kept + [
        _record(p.milestone_value, p.achieved_at, p.streak_start_date, p.milestone_type) for p in plan.to_insert
    ]


def _plan(sobriety_date, slip_ups, existing, now=NOW):
    snapshot = calculate_streak(sobriety_date, slip_ups, "UTC", now)
    return plan_sobriety_milestones(snapshot, existing, slip_ups, "UTC", now)


def _slip_up(restart):
    return SimpleNamespace(id=1, slip_up_date=restart, recovery_restart_date=restart, created_at=None)


def test_thirty_days_inserts_thirty_day_milestone():
    plan = _plan("2024-01-15", [], [])
    inserted = {p.milestone_value: p.achieved_at for p in plan.to_insert}
    assert inserted == {1: date(2024, 1, 16), 7: date(2024, 1, 22), 30: date(2024, 2, 14)}
    assert all(p.streak_start_date == date(2024, 1, 15) for p in plan.to_insert)
    assert plan.to_delete == []


def test_reconcile_is_idempotent():
    existing = _apply([], _plan("2024-01-15", [], []))
    second = _plan("2024-01-15", [], existing)
    assert second.is_empty


def test_slip_up_keeps_milestones_earned_before_restart():
    existing = _apply([], _plan("2024-01-15", [], []))
    plan = _plan("2024-01-15", [_slip_up("2024-02-10")], existing)
    # 30 days was dated 2024-02-14, after the restart, and only 4 days have passed since
    assert [r.milestone_value for r in plan.to_delete] == [30]
    assert plan.to_insert == []


def test_backdated_slip_up_unearns_later_milestones():
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    existing = _apply([], _plan("2024-01-01", [], [], now=now))
    assert {r.milestone_value: r.achieved_at for r in existing}[60] == date(2024, 3, 1)

    plan = _plan("2024-01-01", [_slip_up("2024-02-10")], existing, now=now)
    assert [r.milestone_value for r in plan.to_delete] == [60]
    kept = [r for r in existing if r not in plan.to_delete]
    assert {r.milestone_value: r.achieved_at for r in kept} == {
        1: date(2024, 1, 2),
        7: date(2024, 1, 8),
        30: date(2024, 1, 31),
    }
    assert plan.to_insert == []
    assert _plan("2024-01-01", [_slip_up("2024-02-10")], _apply(existing, plan), now=now).is_empty


def test_deleting_only_slip_up_removes_its_milestones():
    slip_up = _slip_up("2024-01-05")
    with_slip_up = _apply([_record(1, date(2024, 1, 2), date(2024, 1, 1))], _plan("2024-01-01", [slip_up], [
        _record(1, date(2024, 1, 2), date(2024, 1, 1)),
    ]))
    anchored_on_slip_up = [r for r in with_slip_up if r.streak_start_date == date(2024, 1, 5)]
    assert {r.milestone_value for r in anchored_on_slip_up} == {7, 30}

    plan = _plan("2024-01-01", [], with_slip_up)
    assert {r.milestone_value for r in plan.to_delete} == {7, 30}
    assert all(r.streak_start_date == date(2024, 1, 5) for r in plan.to_delete)
    reinserted = {p.milestone_value: p.achieved_at for p in plan.to_insert}
    assert reinserted == {7: date(2024, 1, 8), 30: date(2024, 1, 31)}

    assert _plan("2024-01-01", [], _apply(with_slip_up, plan)).is_empty


def test_milestone_ahead_of_today_is_deleted():
    # Earned while time travelling forward, then the clock came back
    existing = [
        _record(30, date(2024, 2, 14), date(2024, 1, 15)),
        _record(60, date(2024, 3, 15), date(2024, 1, 15)),
    ]
    plan = _plan("2024-01-15", [], existing)
    assert [r.milestone_value for r in plan.to_delete] == [60]
    assert {p.milestone_value for p in plan.to_insert} == {1, 7}


def test_legacy_record_anchor_is_inferred():
    existing = [_record(7, date(2024, 1, 22))]
    plan = _plan("2024-01-15", [], existing)
    assert plan.to_delete == []
    assert {p.milestone_value for p in plan.to_insert} == {1, 30}


def test_current_era_record_with_wrong_date_is_replaced():
    existing = [_record(7, date(2024, 1, 25), date(2024, 1, 15))]
    plan = _plan("2024-01-15", [], existing)
    assert plan.to_delete == existing
    assert date(2024, 1, 22) in [p.achieved_at for p in plan.to_insert if p.milestone_value == 7]


def test_unknown_thresholds_and_other_types_untouched():
    existing = [
        _record(45, date(2024, 3, 1), date(2024, 1, 15)),
        _record(5, date(2024, 3, 1), milestone_type="meeting_count"),
    ]
    plan = _plan("2024-01-15", [], existing)
    assert plan.to_delete == []


def test_unset_snapshot_gives_empty_plan():
    assert plan_sobriety_milestones(None, [_record(1, date(2024, 1, 2))]).is_empty


def test_reconcile_generic_sets_are_disjoint():
    thresholds = [Threshold("demo", 1, "One"), Threshold("demo", 2, "Two"), Threshold("demo", 3, "Three")]
    existing = [_record(1, date(2024, 1, 1), milestone_type="demo"), _record(3, date(2024, 1, 3), milestone_type="demo")]
    reached = {1: date(2024, 1, 1), 2: date(2024, 1, 2)}

    plan = reconcile(
        thresholds,
        existing,
        achieved_on=lambda t: reached.get(t.value),
        is_stale=lambda record, t: t.value not in reached,
    )
    assert [p.milestone_value for p in plan.to_insert] == [2]
    assert [r.milestone_value for r in plan.to_delete] == [3]


def test_sobriety_threshold_table():
    assert [t.days for t in SOBRIETY_THRESHOLDS] == [1, 7, 30, 60, 90, 180, 365, 730, 1095]
    assert all(t.milestone_type == SOBRIETY for t in SOBRIETY_THRESHOLDS)
