"""Handing a plan to the heat pump.

The device protocol itself lives outside this package. Executors receive
one session at a time and either return normally or raise ExecutionFailure.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

from .errors import ExecutionFailure
from .models import Plan, ScheduledSession, SessionKind
from .windows import to_device_time

_LOGGER = logging.getLogger(__name__)

DEVICE_TIME_FORMAT = "%Y-%m-%d %H:%M"


@dataclass(frozen=True)
class DeviceCommand:
    """A single instruction for the heat pump."""

    name: str
    arguments: dict = field(default_factory=dict)


def build_commands(
    session: ScheduledSession, temperature: float, device_tz: ZoneInfo
) -> list[DeviceCommand]:
    """Commands that schedule a session, with times in the device's zone."""
    start = to_device_time(session.start, device_tz)
    end = to_device_time(session.end, device_tz)
    timer = "tap_water_timer" if session.kind == SessionKind.HEATING else "desinfection_timer"
    return [
        DeviceCommand("login"),
        DeviceCommand("set_tap_water_temperature", {"temperature": temperature}),
        DeviceCommand(
            f"set_{timer}",
            {
                "from": start.strftime(DEVICE_TIME_FORMAT),
                "till": end.strftime(DEVICE_TIME_FORMAT),
            },
        ),
    ]


class DeviceExecutor(ABC):
    """Something that can put a scheduled session on the heat pump."""

    @abstractmethod
    def execute(self, session: ScheduledSession, temperature: float, device_tz: ZoneInfo) -> None:
        """Schedule the session. Raises ExecutionFailure if the device refuses."""


class LoggingExecutor(DeviceExecutor):
    """Logs the commands a device would receive and reports success."""

    def __init__(self):
        self.sent: list[DeviceCommand] = []

    def execute(self, session: ScheduledSession, temperature: float, device_tz: ZoneInfo) -> None:
        for command in build_commands(session, temperature, device_tz):
            _LOGGER.info("Device command %s %s", command.name, command.arguments)
            self.sent.append(command)


def execute_plan(
    plan: Plan,
    executor: DeviceExecutor,
    temperature: float,
    device_tz: ZoneInfo,
) -> list[tuple[ScheduledSession, bool]]:
    """Execute every session in order, collecting a success flag per session."""
    results = []
    for session in plan.sessions:
        try:
            executor.execute(session, temperature, device_tz)
        except ExecutionFailure as e:
            _LOGGER.error("Failed to schedule %s session: %s", session.kind.value, e.describe())
            results.append((session, False))
            continue
        results.append((session, True))
    return results
