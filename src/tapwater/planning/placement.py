"""Session placement: find the cheapest valid start for a session.

A strategy turns a session spec and a price forecast into the best
candidate. ``place`` then applies jitter and builds the scheduled session.
Strategies are looked up by the name used in the config's
``planningStrategy`` setting.
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..config import STRATEGY_CONSECUTIVE, WORST_SCOPE_HORIZON, WORST_SCOPE_WINDOWS, PlannerConfig
from ..errors import ConfigurationError, ForecastGapError
from ..forecast import PriceForecast
from ..models import PriceSample, ScheduledSession, SessionKind, SessionSpec, Window

_LOGGER = logging.getLogger(__name__)

# Costs closer than this are treated as equal, so the earlier start wins
COST_PRECISION = 9


@dataclass(frozen=True)
class Candidate:
    """A feasible start inside one window."""

    start: datetime
    end: datetime
    window: Window
    cost: float


class PlacementStrategy(ABC):
    """Chooses where a session should run."""

    name: str

    @abstractmethod
    def select(self, spec: SessionSpec, forecast: PriceForecast) -> Candidate | None:
        """Return the best candidate, or None if nothing qualifies.

        Raises ForecastGapError when the forecast does not cover the session
        duration in any of the spec's windows.
        """


class ConsecutiveStrategy(PlacementStrategy):
    """Run the whole session in one uninterrupted block inside a single window."""

    name = STRATEGY_CONSECUTIVE

    def __init__(
        self,
        block_worst_heating_times: bool = False,
        worst_fraction: float = 0.25,
        worst_scope: str = WORST_SCOPE_HORIZON,
    ):
        self.block_worst_heating_times = block_worst_heating_times
        self.worst_fraction = worst_fraction
        self.worst_scope = worst_scope

    def select(self, spec: SessionSpec, forecast: PriceForecast) -> Candidate | None:
        duration = spec.duration
        pieces = covered_pieces(spec.windows, forecast, duration)
        if not pieces:
            raise ForecastGapError(
                f"No {_hours(duration)}h stretch of prices in any of {len(spec.windows)} window(s)",
                subject=spec.kind.value,
            )

        if self.block_worst_heating_times and spec.kind == SessionKind.HEATING:
            blocked = self._worst_samples(spec, forecast)
            if blocked:
                _LOGGER.debug(
                    "Blocking %d most expensive bucket(s) from %.4f",
                    len(blocked),
                    min(s.price for s in blocked),
                )
            pieces = [
                p for p in subtract(pieces, [(s.start, s.end) for s in blocked])
                if p.duration >= duration
            ]

        best = None
        best_key = None
        for piece in pieces:
            for start in candidate_starts(piece, forecast, duration):
                end = start + duration
                samples = forecast.overlapping(start, end)
                if not within_ceiling(samples, piece.price_ceiling):
                    continue
                cost = weighted_cost(samples, start, end)
                key = (round(cost, COST_PRECISION), start)
                if best_key is None or key < best_key:
                    best_key = key
                    best = Candidate(start=start, end=end, window=piece, cost=cost)
        return best

    def _worst_samples(self, spec: SessionSpec, forecast: PriceForecast) -> list[PriceSample]:
        if self.worst_scope == WORST_SCOPE_WINDOWS:
            seen = {}
            for w in spec.windows:
                for s in forecast.overlapping(w.start, w.end):
                    seen[s.start] = s
            pool = [seen[k] for k in sorted(seen)]
        else:
            horizon_start = spec.horizon_start or (forecast.samples[0].start if len(forecast) else None)
            if horizon_start is None:
                return []
            pool = forecast.overlapping(horizon_start, spec.horizon_end)
        return worst_samples(pool, self.worst_fraction)


STRATEGIES: dict[str, type[PlacementStrategy]] = {
    ConsecutiveStrategy.name: ConsecutiveStrategy,
}


def create_strategy(config: PlannerConfig) -> PlacementStrategy:
    """Build the strategy named by the config."""
    if config.planning_strategy not in STRATEGIES:
        raise ConfigurationError(
            f"Unknown strategy {config.planning_strategy!r}", subject="planningStrategy"
        )
    return ConsecutiveStrategy(
        block_worst_heating_times=config.enable_blocking_worst_heating_times,
        worst_fraction=config.worst_heating_times_fraction,
        worst_scope=config.worst_heating_times_scope,
    )


def place(
    spec: SessionSpec,
    forecast: PriceForecast,
    strategy: PlacementStrategy,
    jitter_max_minutes: int = 0,
    rng: random.Random | None = None,
) -> ScheduledSession | None:
    """Place a session, or return None when no start satisfies its constraints."""
    candidate = strategy.select(spec, forecast)
    if candidate is None:
        return None

    start = apply_jitter(candidate, forecast, spec.duration, jitter_max_minutes, rng)
    end = start + spec.duration
    samples = forecast.overlapping(start, end)
    ceiling = candidate.window.price_ceiling

    session = ScheduledSession(
        kind=spec.kind,
        start=start,
        end=end,
        average_price=weighted_cost(samples, start, end) / spec.duration_seconds,
        below_ceiling=ceiling is None or any(s.price < ceiling for s in samples),
    )
    _LOGGER.info(
        "Placed %s session %s - %s (average price %.4f)",
        spec.kind.value,
        start.isoformat(),
        end.isoformat(),
        session.average_price,
    )
    return session


def apply_jitter(
    candidate: Candidate,
    forecast: PriceForecast,
    duration: timedelta,
    jitter_max_minutes: int,
    rng: random.Random | None = None,
) -> datetime:
    """Shift a start by up to jitter_max_minutes, keeping it valid.

    The shifted session must still end inside the candidate's window and stay
    below the window's price ceiling; otherwise the original start is kept.
    """
    if jitter_max_minutes <= 0:
        return candidate.start
    rng = rng or random.Random()
    shifted = candidate.start + timedelta(minutes=rng.randint(0, jitter_max_minutes))
    end = shifted + duration
    if end > candidate.window.end:
        return candidate.start
    if not within_ceiling(forecast.overlapping(shifted, end), candidate.window.price_ceiling):
        return candidate.start
    return shifted


def covered_pieces(
    windows: list[Window], forecast: PriceForecast, duration: timedelta
) -> list[Window]:
    """Parts of the windows that have prices, long enough for the session."""
    ranges = forecast.covered_ranges()
    pieces = []
    for w in windows:
        for r_start, r_end in ranges:
            start = max(w.start, r_start)
            end = min(w.end, r_end)
            if end - start >= duration:
                pieces.append(Window(start, end, w.price_ceiling))
    return pieces


def subtract(windows: list[Window], blocked: list[tuple[datetime, datetime]]) -> list[Window]:
    """Cut blocked ranges out of windows."""
    result = []
    for w in windows:
        parts = [(w.start, w.end)]
        for b_start, b_end in blocked:
            next_parts = []
            for start, end in parts:
                if b_end <= start or b_start >= end:
                    next_parts.append((start, end))
                    continue
                if start < b_start:
                    next_parts.append((start, b_start))
                if b_end < end:
                    next_parts.append((b_end, end))
            parts = next_parts
        result.extend(Window(start, end, w.price_ceiling) for start, end in parts)
    return result


def candidate_starts(
    window: Window, forecast: PriceForecast, duration: timedelta
) -> list[datetime]:
    """Bucket boundaries inside the window (and the window start) that fit the session."""
    starts = {window.start}
    starts.update(
        s.start for s in forecast.overlapping(window.start, window.end) if s.start >= window.start
    )
    return sorted(start for start in starts if start + duration <= window.end)


def weighted_cost(samples: list[PriceSample], start: datetime, end: datetime) -> float:
    """Sum of price times overlap in seconds."""
    total = 0.0
    for s in samples:
        overlap = (min(s.end, end) - max(s.start, start)).total_seconds()
        if overlap > 0:
            total += s.price * overlap
    return total


def within_ceiling(samples: list[PriceSample], ceiling: float | None) -> bool:
    if ceiling is None:
        return True
    return all(s.price < ceiling for s in samples)


def worst_samples(samples: list[PriceSample], fraction: float) -> list[PriceSample]:
    """The most expensive share of samples, in start order.

    At most ``int(len(samples) * fraction)`` samples are returned; among equal
    prices the earlier sample goes first. Samples at the cheapest price are
    never returned, so flat prices block nothing.
    """
    count = int(len(samples) * fraction)
    if count == 0:
        return []
    cheapest = min(s.price for s in samples)
    ranked = sorted(samples, key=lambda s: (-s.price, s.start))[:count]
    return sorted((s for s in ranked if s.price > cheapest), key=lambda s: s.start)


def _hours(duration: timedelta) -> str:
    return f"{duration.total_seconds() / 3600:g}"
