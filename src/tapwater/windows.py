"""Resolve weekly local-time slots into absolute windows.

Slots are wall-clock times in the configured local zone. A slot whose start
equals its end covers the whole day; a slot whose start lies after its end
runs past midnight and is split at midnight, so ``23:00-0:00`` ends at
midnight and ``22:00-2:00`` continues into the next day until 02:00.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .models import TimeSlot, WeeklySlots, Window


def resolve(
    slots: WeeklySlots,
    reference_now: datetime,
    horizon_end: datetime,
    local_tz: ZoneInfo,
) -> list[Window]:
    """Expand a weekly slot table into windows within [reference_now, horizon_end].

    Returned windows are sorted and never overlap. Windows belonging to
    consecutive days are kept apart even when they touch.
    """
    if horizon_end <= reference_now:
        return []

    # Start a day early so yesterday's midnight-crossing slots are included
    day = reference_now.astimezone(local_tz).date() - timedelta(days=1)
    last_day = horizon_end.astimezone(local_tz).date()

    candidates = []
    while day <= last_day:
        for slot in slots[day.weekday()]:
            candidates.extend(_slot_windows(slot, day, local_tz))
        day += timedelta(days=1)

    candidates.sort(key=lambda w: (w.start, w.end))

    resolved: list[Window] = []
    for w in candidates:
        start = max(w.start, reference_now)
        end = min(w.end, horizon_end)
        if resolved and start < resolved[-1].end:
            start = resolved[-1].end
        if start < end:
            resolved.append(Window(start, end, w.price_ceiling))
    return resolved


def _slot_windows(slot: TimeSlot, day: date, tz: ZoneInfo) -> list[Window]:
    ceiling = getattr(slot, "if_price_below", None)
    next_day = day + timedelta(days=1)
    midnight = _to_instant(next_day, time(0), tz)

    if slot.whole_day:
        return [Window(_to_instant(day, time(0), tz), midnight, ceiling)]

    if slot.crosses_midnight:
        windows = [Window(_to_instant(day, slot.start, tz), midnight, ceiling)]
        if slot.end != time(0):
            windows.append(Window(midnight, _to_instant(next_day, slot.end, tz), ceiling))
        return windows

    return [Window(_to_instant(day, slot.start, tz), _to_instant(day, slot.end, tz), ceiling)]


def _to_instant(day: date, t: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, t, tzinfo=tz).astimezone(timezone.utc)


def to_device_time(instant: datetime, device_tz: ZoneInfo) -> datetime:
    """Express an absolute instant in the device's own timezone."""
    return instant.astimezone(device_tz)
