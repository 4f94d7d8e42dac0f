"""Data models for time slots, price samples and planned sessions."""

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from enum import Enum

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


class SessionKind(str, Enum):
    """The two kinds of session the heat pump can run."""

    HEATING = "heating"
    DESINFECTION = "desinfection"


@dataclass(frozen=True)
class TimeSlot:
    """A recurring local-time window on one weekday."""

    weekday: int  # 0 = Monday
    start: time
    end: time

    @property
    def whole_day(self) -> bool:
        return self.start == self.end

    @property
    def crosses_midnight(self) -> bool:
        return self.start > self.end


@dataclass(frozen=True)
class DesinfectionSlot(TimeSlot):
    """A time slot that is only usable while prices stay below a ceiling."""

    if_price_below: float | None = None


# Fixed 7-entry table indexed by weekday, each entry an ordered list of slots
WeeklySlots = tuple[list[TimeSlot], ...]


def empty_week() -> WeeklySlots:
    return tuple([] for _ in WEEKDAYS)


@dataclass(frozen=True)
class Window:
    """A resolved absolute interval, optionally carrying a price ceiling."""

    start: datetime
    end: datetime
    price_ceiling: float | None = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class PriceSample:
    """A single spot price bucket."""

    start: datetime
    duration_seconds: int
    price: float

    @property
    def end(self) -> datetime:
        return self.start + timedelta(seconds=self.duration_seconds)


@dataclass(frozen=True)
class SessionSpec:
    """What the placement engine is asked to place."""

    kind: SessionKind
    duration_seconds: int
    windows: list[Window]
    horizon_end: datetime
    horizon_start: datetime | None = None

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_seconds)


@dataclass(frozen=True)
class ScheduledSession:
    """A session placed at concrete instants."""

    kind: SessionKind
    start: datetime
    end: datetime
    average_price: float
    below_ceiling: bool = True

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "start": _format_instant(self.start),
            "end": _format_instant(self.end),
            "averagePrice": self.average_price,
            "belowCeiling": self.below_ceiling,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledSession":
        return cls(
            kind=SessionKind(data["kind"]),
            start=parse_instant(data["start"]),
            end=parse_instant(data["end"]),
            average_price=float(data["averagePrice"]),
            below_ceiling=bool(data.get("belowCeiling", True)),
        )


@dataclass(frozen=True)
class PlannerState:
    """State carried from one run to the next."""

    last_desinfection_completed_at: datetime | None = None
    last_plan: list[ScheduledSession] | None = None

    def to_dict(self) -> dict:
        return {
            "lastDesinfectionCompletedAt": (
                _format_instant(self.last_desinfection_completed_at)
                if self.last_desinfection_completed_at
                else None
            ),
            "lastPlan": (
                [s.to_dict() for s in self.last_plan] if self.last_plan is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlannerState":
        completed = data.get("lastDesinfectionCompletedAt")
        last_plan = data.get("lastPlan")
        return cls(
            last_desinfection_completed_at=parse_instant(completed) if completed else None,
            last_plan=(
                [ScheduledSession.from_dict(s) for s in last_plan]
                if last_plan is not None
                else None
            ),
        )


@dataclass
class Plan:
    """The output of one planning run."""

    created_at: datetime
    sessions: list[ScheduledSession]
    state: PlannerState
    desinfection_due: bool = False
    proposed_desinfection_completed_at: datetime | None = None
    diagnostics: list[str] = field(default_factory=list)

    def session(self, kind: SessionKind) -> ScheduledSession | None:
        for s in self.sessions:
            if s.kind == kind:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "createdAt": _format_instant(self.created_at),
            "sessions": [s.to_dict() for s in self.sessions],
            "desinfectionDue": self.desinfection_due,
            "proposedDesinfectionCompletedAt": (
                _format_instant(self.proposed_desinfection_completed_at)
                if self.proposed_desinfection_completed_at
                else None
            ),
            "diagnostics": list(self.diagnostics),
            "state": self.state.to_dict(),
        }


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant, treating naive values as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _format_instant(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()
