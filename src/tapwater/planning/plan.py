"""Assemble the plan for one run and confirm it after execution."""

import logging
import random
from datetime import datetime

import yaml

from ..config import PlannerConfig
from ..errors import ForecastGapError
from ..forecast import PriceForecast
from ..models import Plan, PlannerState, ScheduledSession, SessionKind, SessionSpec
from ..windows import resolve
from .desinfection import decide
from .placement import PlacementStrategy, create_strategy, place

_LOGGER = logging.getLogger(__name__)


def heating_spec(config: PlannerConfig, now: datetime, horizon_end: datetime) -> SessionSpec:
    """Heating may run in any plannable window, at any price."""
    return SessionSpec(
        kind=SessionKind.HEATING,
        duration_seconds=config.session_duration_seconds,
        windows=resolve(config.plannable_slots, now, horizon_end, config.local_tz),
        horizon_end=horizon_end,
        horizon_start=now,
    )


def build_plan(
    config: PlannerConfig,
    forecast: PriceForecast,
    state: PlannerState,
    now: datetime,
    rng: random.Random | None = None,
    strategy: PlacementStrategy | None = None,
) -> Plan:
    """Plan heating and, when due, desinfection from scratch.

    The returned plan's state keeps the previous desinfection timestamp. A
    placed desinfection session only becomes the new timestamp through
    confirm(), once the device has accepted it.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    horizon_end = now + config.horizon
    strategy = strategy or create_strategy(config)
    rng = rng or random.Random(config.jitter_seed)
    diagnostics: list[str] = []
    sessions: list[ScheduledSession] = []

    heating = _place(
        heating_spec(config, now, horizon_end), forecast, strategy, config, rng, diagnostics
    )
    if heating:
        sessions.append(heating)

    decision = decide(
        state.last_desinfection_completed_at,
        now,
        config.minimal_days_between_desinfection,
        config.desinfection_slots,
        horizon_end,
        config.session_duration_seconds,
        config.local_tz,
    )
    # Heating and desinfection run on separate device timers, so the two
    # sessions are placed independently and may share an interval
    desinfection = None
    if decision.due:
        if decision.spec is None:
            diagnostics.append(f"[desinfection] {decision.reason}")
        else:
            desinfection = _place(decision.spec, forecast, strategy, config, rng, diagnostics)
        if desinfection:
            sessions.append(desinfection)

    sessions.sort(key=lambda s: (s.start, s.kind.value))
    return Plan(
        created_at=now,
        sessions=sessions,
        state=PlannerState(
            last_desinfection_completed_at=state.last_desinfection_completed_at,
            last_plan=sessions,
        ),
        desinfection_due=decision.due,
        proposed_desinfection_completed_at=desinfection.end if desinfection else None,
        diagnostics=diagnostics,
    )


def _place(
    spec: SessionSpec,
    forecast: PriceForecast,
    strategy: PlacementStrategy,
    config: PlannerConfig,
    rng: random.Random,
    diagnostics: list[str],
) -> ScheduledSession | None:
    try:
        session = place(spec, forecast, strategy, config.jitter_max_minutes, rng)
    except ForecastGapError as e:
        _LOGGER.warning("Leaving %s unscheduled: %s", spec.kind.value, e.describe())
        diagnostics.append(e.describe())
        return None

    if session is None:
        message = f"[placement] {spec.kind.value}: no start satisfies duration and price limits"
        _LOGGER.warning(message)
        diagnostics.append(message)
    return session


def confirm(plan: Plan, results: list[tuple[ScheduledSession, bool]]) -> PlannerState:
    """State to persist after execution.

    The desinfection timestamp only moves forward when the device confirmed
    the desinfection session.
    """
    completed_at = plan.state.last_desinfection_completed_at
    for session, succeeded in results:
        if session.kind == SessionKind.DESINFECTION and succeeded:
            completed_at = session.end
    return PlannerState(last_desinfection_completed_at=completed_at, last_plan=plan.state.last_plan)


def dump_plan(plan: Plan) -> str:
    """Deterministic YAML rendering of a plan."""
    return yaml.safe_dump(plan.to_dict(), sort_keys=True)
