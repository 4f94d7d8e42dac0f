from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from tapwater.models import DesinfectionSlot, SessionKind, empty_week
from tapwater.planning.desinfection import days_since, decide, is_due

TZ = ZoneInfo("Europe/Amsterdam")
DURATION = 7200


def local(*args):
    return datetime(*args, tzinfo=TZ).astimezone(timezone.utc)


def weekend_slots():
    """Friday below 0.0, Saturday below 0.1, Sunday at any price."""
    week = empty_week()
    week[4].append(DesinfectionSlot(4, time(7), time(19), 0.0))
    week[5].append(DesinfectionSlot(5, time(7), time(19), 0.1))
    week[6].append(DesinfectionSlot(6, time(7), time(19)))
    return week


def run_decide(last, now, minimal_days=4, slots=None):
    return decide(
        last,
        now,
        minimal_days,
        slots if slots is not None else weekend_slots(),
        now + timedelta(hours=12),
        DURATION,
        TZ,
    )


def test_due_without_history():
    now = local(2024, 3, 10, 6, 0)  # Sunday
    decision = run_decide(None, now)

    assert decision.due
    assert decision.spec.kind == SessionKind.DESINFECTION
    assert decision.spec.duration_seconds == DURATION
    assert decision.spec.windows[0].start == local(2024, 3, 10, 7, 0)
    assert decision.spec.windows[0].price_ceiling is None


def test_scenario_not_due_three_days_after_last():
    now = local(2024, 3, 10, 6, 0)
    decision = run_decide(now - timedelta(days=3), now, minimal_days=4)

    assert not decision.due
    assert decision.spec is None


def test_due_after_minimal_days():
    now = local(2024, 3, 10, 6, 0)
    assert run_decide(now - timedelta(days=4), now, minimal_days=4).due


def test_due_counts_calendar_days_not_hours():
    """Late Wednesday evening to early Sunday morning is four calendar days."""
    last = local(2024, 3, 6, 23, 30)
    now = local(2024, 3, 10, 0, 30)

    assert days_since(last, now, TZ) == 4
    assert (now - last) < timedelta(days=4)
    assert is_due(last, now, 4, TZ)


def test_calendar_days_use_local_zone():
    # 23:30 UTC on the 6th is already the 7th in Amsterdam
    last = datetime(2024, 3, 6, 23, 30, tzinfo=timezone.utc)
    now = datetime(2024, 3, 10, 22, 0, tzinfo=timezone.utc)
    assert days_since(last, now, TZ) == 3


def test_due_but_no_window_in_horizon_stays_due():
    now = local(2024, 3, 4, 6, 0)  # Monday, no desinfection slots
    decision = run_decide(None, now)

    assert decision.due
    assert decision.spec is None
    assert "no desinfection window" in decision.reason


def test_windows_keep_their_own_ceiling():
    now = local(2024, 3, 8, 6, 0)  # Friday
    decision = decide(None, now, 4, weekend_slots(), now + timedelta(days=2), DURATION, TZ)

    assert [w.price_ceiling for w in decision.spec.windows] == [0.0, 0.1]


def test_due_is_monotonic_until_completed():
    last = local(2024, 3, 1, 12, 0)
    now = local(2024, 3, 9, 6, 0)
    for hours in range(0, 72, 12):
        assert run_decide(last, now + timedelta(hours=hours)).due
