from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from tapwater.errors import ExecutionFailure
from tapwater.execution import (
    DeviceExecutor,
    LoggingExecutor,
    build_commands,
    execute_plan,
)
from tapwater.models import Plan, PlannerState, ScheduledSession, SessionKind

HEATING = ScheduledSession(
    SessionKind.HEATING,
    datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc),
    datetime(2024, 3, 10, 14, 0, tzinfo=timezone.utc),
    0.05,
)
DESINFECTION = ScheduledSession(
    SessionKind.DESINFECTION,
    datetime(2024, 3, 10, 12, 7, tzinfo=timezone.utc),
    datetime(2024, 3, 10, 14, 7, tzinfo=timezone.utc),
    0.05,
)


class RefusingExecutor(DeviceExecutor):
    """Accepts heating but refuses desinfection."""

    def __init__(self):
        self.accepted = []

    def execute(self, session, temperature, device_tz):
        if session.kind == SessionKind.DESINFECTION:
            raise ExecutionFailure("timer rejected", subject=session.kind.value)
        self.accepted.append(session)


def make_plan(*sessions):
    return Plan(
        created_at=datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc),
        sessions=list(sessions),
        state=PlannerState(),
    )


def test_build_commands_in_device_zone():
    commands = build_commands(HEATING, 50.0, ZoneInfo("Europe/Amsterdam"))

    assert [c.name for c in commands] == [
        "login",
        "set_tap_water_temperature",
        "set_tap_water_timer",
    ]
    assert commands[1].arguments == {"temperature": 50.0}
    assert commands[2].arguments == {"from": "2024-03-10 13:00", "till": "2024-03-10 15:00"}


def test_build_commands_for_desinfection():
    commands = build_commands(DESINFECTION, 50.0, ZoneInfo("UTC"))

    assert commands[-1].name == "set_desinfection_timer"
    assert commands[-1].arguments == {"from": "2024-03-10 12:07", "till": "2024-03-10 14:07"}


def test_logging_executor_records_commands():
    executor = LoggingExecutor()

    results = execute_plan(make_plan(HEATING, DESINFECTION), executor, 50.0, ZoneInfo("UTC"))

    assert results == [(HEATING, True), (DESINFECTION, True)]
    assert len(executor.sent) == 6


def test_failure_is_reported_per_session():
    executor = RefusingExecutor()

    results = execute_plan(make_plan(HEATING, DESINFECTION), executor, 50.0, ZoneInfo("UTC"))

    assert results == [(HEATING, True), (DESINFECTION, False)]
    assert executor.accepted == [HEATING]


def test_empty_plan_executes_nothing():
    assert execute_plan(make_plan(), LoggingExecutor(), 50.0, ZoneInfo("UTC")) == []
