"""Planner configuration loading and validation."""

import os
from dataclasses import dataclass
from datetime import time, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .errors import ConfigurationError
from .models import WEEKDAYS, DesinfectionSlot, TimeSlot, WeeklySlots, empty_week

CONFIG_PATH_ENV = "CONFIG_PATH"

STRATEGY_CONSECUTIVE = "Consecutive"
WORST_SCOPE_HORIZON = "horizon"
WORST_SCOPE_WINDOWS = "windows"

DEFAULT_SPOT_PRICE_KEY = "spot-prices"
DEFAULT_STATE_KEY = "tapwater-planner-state"
DEFAULT_WORST_FRACTION = 0.25

SECONDS_PER_DAY = 24 * 60 * 60

_WEEKDAY_ALIASES = {
    **{name.lower(): i for i, name in enumerate(WEEKDAYS)},
    **{
        name: i
        for i, name in enumerate(
            ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
        )
    },
}


@dataclass(frozen=True)
class PlannerConfig:
    """Everything a planning run needs to know besides prices and state."""

    planning_strategy: str
    plannable_slots: WeeklySlots
    desinfection_slots: WeeklySlots
    session_duration_seconds: int
    local_time_zone: str
    heatpump_time_zone: str
    maximum_hours_to_plan_ahead: int
    desired_tap_water_temperature: float
    minimal_days_between_desinfection: int
    jitter_max_minutes: int = 0
    enable_blocking_worst_heating_times: bool = False
    worst_heating_times_scope: str = WORST_SCOPE_HORIZON
    worst_heating_times_fraction: float = DEFAULT_WORST_FRACTION
    spot_price_state_key: str = DEFAULT_SPOT_PRICE_KEY
    state_key: str = DEFAULT_STATE_KEY
    jitter_seed: int | None = None

    @property
    def local_tz(self) -> ZoneInfo:
        return ZoneInfo(self.local_time_zone)

    @property
    def heatpump_tz(self) -> ZoneInfo:
        return ZoneInfo(self.heatpump_time_zone)

    @property
    def horizon(self) -> timedelta:
        return timedelta(hours=self.maximum_hours_to_plan_ahead)


def get_config_path(config_path: Path | None = None) -> Path:
    """Find the planner config file."""
    if config_path:
        return config_path
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.home() / ".config" / "tapwater-planner" / "config.yaml",
    ]
    for path in candidates:
        if path.exists():
            return path
    raise ConfigurationError(
        f"Could not find a config file; set {CONFIG_PATH_ENV} or pass --config",
        subject="config.yaml",
    )


def load_config(config_path: Path | None = None) -> PlannerConfig:
    """Load and validate the planner config from a YAML file."""
    path = get_config_path(config_path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Could not read config: {e}", subject=str(path))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML: {e}", subject=str(path))
    return parse_config(data)


def parse_config(data: dict) -> PlannerConfig:
    """Build a PlannerConfig from a decoded YAML document."""
    if not isinstance(data, dict):
        raise ConfigurationError("Config must be a mapping")

    strategy = data.get("planningStrategy", STRATEGY_CONSECUTIVE)
    if strategy != STRATEGY_CONSECUTIVE:
        raise ConfigurationError(f"Unknown strategy {strategy!r}", subject="planningStrategy")

    local_zone = _require(data, "localTimeZone")
    heatpump_zone = data.get("heatpumpTimeZone", local_zone)
    for key, zone in (("localTimeZone", local_zone), ("heatpumpTimeZone", heatpump_zone)):
        _check_zone(zone, key)

    duration = _positive_int(data, "sessionDurationInSeconds")
    if duration > SECONDS_PER_DAY:
        raise ConfigurationError(
            "Sessions longer than a day cannot be planned", subject="sessionDurationInSeconds"
        )

    scope = data.get("worstHeatingTimesScope", WORST_SCOPE_HORIZON)
    if scope not in (WORST_SCOPE_HORIZON, WORST_SCOPE_WINDOWS):
        raise ConfigurationError(
            f"Expected '{WORST_SCOPE_HORIZON}' or '{WORST_SCOPE_WINDOWS}', got {scope!r}",
            subject="worstHeatingTimesScope",
        )
    fraction = _float(data, "worstHeatingTimesFraction", default=DEFAULT_WORST_FRACTION)
    if not 0 < fraction < 1:
        raise ConfigurationError(
            "Must lie strictly between 0 and 1", subject="worstHeatingTimesFraction"
        )

    jitter = _non_negative_int(data, "jitterMaxMinutes", default=0)
    minimal_days = _non_negative_int(data, "minimalDaysBetweenDesinfection")

    seed = _optional_int(data, "jitterSeed")

    return PlannerConfig(
        planning_strategy=strategy,
        plannable_slots=parse_weekly_slots(
            data.get("plannableLocalTimeSlots"), "plannableLocalTimeSlots"
        ),
        desinfection_slots=parse_weekly_slots(
            data.get("desinfectionLocalTimeSlots"), "desinfectionLocalTimeSlots", desinfection=True
        ),
        session_duration_seconds=duration,
        local_time_zone=local_zone,
        heatpump_time_zone=heatpump_zone,
        maximum_hours_to_plan_ahead=_positive_int(data, "maximumHoursToPlanAhead"),
        desired_tap_water_temperature=_float(data, "desiredTapWaterTemperature"),
        minimal_days_between_desinfection=minimal_days,
        jitter_max_minutes=jitter,
        enable_blocking_worst_heating_times=_bool(data, "enableBlockingWorstHeatingTimes"),
        worst_heating_times_scope=scope,
        worst_heating_times_fraction=fraction,
        spot_price_state_key=data.get("spotPriceStateKey", DEFAULT_SPOT_PRICE_KEY),
        state_key=data.get("stateKey", DEFAULT_STATE_KEY),
        jitter_seed=seed,
    )


def parse_weekly_slots(raw: dict | None, key: str, desinfection: bool = False) -> WeeklySlots:
    """Turn a weekday -> [slot] mapping into a 7-entry table."""
    week = empty_week()
    if not raw:
        return week
    if not isinstance(raw, dict):
        raise ConfigurationError("Expected a mapping of weekday to slots", subject=key)

    for day_name, slots in raw.items():
        weekday = _WEEKDAY_ALIASES.get(str(day_name).lower())
        if weekday is None:
            raise ConfigurationError(f"Unknown weekday {day_name!r}", subject=key)
        for s in slots or []:
            if not isinstance(s, dict):
                raise ConfigurationError("Expected a slot with 'from' and 'till'", subject=key)
            start = parse_time(s.get("from"), f"{key}.{day_name}.from")
            end = parse_time(s.get("till"), f"{key}.{day_name}.till")
            if desinfection:
                ceiling = _float(
                    s, "ifPriceBelow", required=False, subject=f"{key}.{day_name}.ifPriceBelow"
                )
                slot = DesinfectionSlot(weekday, start, end, ceiling)
            else:
                slot = TimeSlot(weekday, start, end)
            week[weekday].append(slot)

    for weekday, slots in enumerate(week):
        slots.sort(key=lambda s: s.start)
        _check_overlaps(slots, f"{key}.{WEEKDAYS[weekday]}")
    return week


def parse_time(value: str | int | None, subject: str) -> time:
    """Parse H:MM[:SS] to a time object.

    YAML 1.1 reads unquoted values such as ``7:00:00`` as base-60 integers,
    so integer seconds since midnight are accepted as well.
    """
    if value is None:
        raise ConfigurationError("Missing time", subject=subject)
    if isinstance(value, int) and not isinstance(value, bool):
        if not 0 <= value < SECONDS_PER_DAY:
            raise ConfigurationError(f"Time out of range: {value}", subject=subject)
        return time(value // 3600, value % 3600 // 60, value % 60)

    parts = str(value).strip().split(":")
    try:
        if len(parts) not in (2, 3):
            raise ValueError
        numbers = [int(p) for p in parts]
        return time(*numbers)
    except ValueError:
        raise ConfigurationError(f"Invalid time {value!r}, expected H:MM[:SS]", subject=subject)


def _same_day_span(slot: TimeSlot) -> tuple[int, int]:
    start = _seconds(slot.start)
    if slot.whole_day or slot.crosses_midnight:
        return start, SECONDS_PER_DAY
    return start, _seconds(slot.end)


def _check_overlaps(slots: list[TimeSlot], subject: str) -> None:
    spans = sorted(_same_day_span(s) for s in slots)
    for (_, prev_end), (start, _) in zip(spans, spans[1:]):
        if start < prev_end:
            raise ConfigurationError("Time slots overlap", subject=subject)


def _seconds(t: time) -> int:
    return t.hour * 3600 + t.minute * 60 + t.second


def _require(data: dict, key: str):
    if data.get(key) is None:
        raise ConfigurationError("Missing required setting", subject=key)
    return data[key]


def _positive_int(data: dict, key: str) -> int:
    try:
        value = int(_require(data, key))
    except (TypeError, ValueError):
        raise ConfigurationError("Expected an integer", subject=key)
    if value <= 0:
        raise ConfigurationError("Must be positive", subject=key)
    return value


def _non_negative_int(data: dict, key: str, default: int | None = None) -> int:
    raw = data.get(key, default)
    if raw is None:
        raise ConfigurationError("Missing required setting", subject=key)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError("Expected an integer", subject=key)
    if value < 0:
        raise ConfigurationError("Must not be negative", subject=key)
    return value


def _check_zone(zone: str, key: str) -> None:
    try:
        ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"Unknown timezone {zone!r}", subject=key)


def _float(
    data: dict,
    key: str,
    default: float | None = None,
    required: bool = True,
    subject: str | None = None,
) -> float | None:
    raw = data.get(key, default)
    if raw is None:
        if not required:
            return None
        raise ConfigurationError("Missing required setting", subject=key)
    if isinstance(raw, bool):
        raise ConfigurationError("Expected a number", subject=subject or key)
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError("Expected a number", subject=subject or key)


def _optional_int(data: dict, key: str) -> int | None:
    raw = data.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ConfigurationError("Expected an integer", subject=key)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError("Expected an integer", subject=key)


def _bool(data: dict, key: str, default: bool = False) -> bool:
    raw = data.get(key, default)
    if not isinstance(raw, bool):
        raise ConfigurationError(f"Expected true or false, got {raw!r}", subject=key)
    return raw
