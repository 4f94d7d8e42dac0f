"""Decide whether an anti-legionella desinfection cycle is due."""

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from ..models import SessionKind, SessionSpec, WeeklySlots
from ..windows import resolve

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DesinfectionDecision:
    """Outcome of the desinfection check for one run."""

    due: bool
    spec: SessionSpec | None
    reason: str


def days_since(last_completed_at: datetime, now: datetime, local_tz: ZoneInfo) -> int:
    """Whole local calendar days between two instants."""
    return (now.astimezone(local_tz).date() - last_completed_at.astimezone(local_tz).date()).days


def is_due(
    last_completed_at: datetime | None,
    now: datetime,
    minimal_days: int,
    local_tz: ZoneInfo,
) -> bool:
    if last_completed_at is None:
        return True
    return days_since(last_completed_at, now, local_tz) >= minimal_days


def decide(
    last_completed_at: datetime | None,
    now: datetime,
    minimal_days: int,
    slots: WeeklySlots,
    horizon_end: datetime,
    duration_seconds: int,
    local_tz: ZoneInfo,
) -> DesinfectionDecision:
    """Work out whether to plan a desinfection cycle this run.

    When a cycle is due but no desinfection window falls inside the horizon,
    the decision stays due with no spec, so the next run tries again.
    """
    if not is_due(last_completed_at, now, minimal_days, local_tz):
        days = days_since(last_completed_at, now, local_tz)
        reason = f"last desinfection {days} day(s) ago, minimum is {minimal_days}"
        _LOGGER.info("Desinfection not due: %s", reason)
        return DesinfectionDecision(due=False, spec=None, reason=reason)

    windows = resolve(slots, now, horizon_end, local_tz)
    if not windows:
        reason = "due, but no desinfection window within the planning horizon"
        _LOGGER.info("Desinfection %s", reason)
        return DesinfectionDecision(due=True, spec=None, reason=reason)

    spec = SessionSpec(
        kind=SessionKind.DESINFECTION,
        duration_seconds=duration_seconds,
        windows=windows,
        horizon_end=horizon_end,
        horizon_start=now,
    )
    if last_completed_at is None:
        reason = "no desinfection recorded"
    else:
        reason = f"last desinfection {days_since(last_completed_at, now, local_tz)} day(s) ago"
    _LOGGER.info("Desinfection due (%s), %d candidate window(s)", reason, len(windows))
    return DesinfectionDecision(due=True, spec=spec, reason=reason)
