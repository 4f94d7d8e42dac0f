"""Spot price forecast handling.

The price exporter publishes its state as a YAML blob of the form::

    spotPrices:
      - from: 2024-03-01T23:00:00Z
        till: 2024-03-02T00:00:00Z
        marketPrice: 0.081
        marketPriceTax: 0.017
        sourcingMarkupPrice: 0.017
        energyTaxPrice: 0.1108

The price of a bucket is the sum of its components, unless the entry carries
an explicit ``price``.
"""

import logging
from bisect import bisect_right
from datetime import datetime
from pathlib import Path

import httpx
import yaml

from . import db
from .errors import SpotPriceError
from .models import PriceSample, parse_instant

_LOGGER = logging.getLogger(__name__)

PRICE_COMPONENTS = ("marketPrice", "marketPriceTax", "sourcingMarkupPrice", "energyTaxPrice")


class PriceForecast:
    """An immutable, ordered sequence of price samples."""

    def __init__(self, samples: list[PriceSample]):
        ordered = sorted(samples, key=lambda s: s.start)
        for prev, cur in zip(ordered, ordered[1:]):
            if cur.start < prev.end:
                raise SpotPriceError(
                    "Price samples overlap", subject=cur.start.isoformat()
                )
        self._samples = tuple(ordered)
        self._starts = [s.start for s in self._samples]

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)

    @property
    def samples(self) -> tuple[PriceSample, ...]:
        return self._samples

    def between(self, start: datetime, end: datetime) -> "PriceForecast":
        """Samples that overlap [start, end)."""
        return PriceForecast(self.overlapping(start, end))

    def overlapping(self, start: datetime, end: datetime) -> list[PriceSample]:
        """Samples that overlap [start, end), in order."""
        # The sample containing `start` is the last one starting at or before it
        i = max(bisect_right(self._starts, start) - 1, 0)
        result = []
        for sample in self._samples[i:]:
            if sample.start >= end:
                break
            if sample.end > start:
                result.append(sample)
        return result

    def covered_ranges(self) -> list[tuple[datetime, datetime]]:
        """Maximal gap-free ranges covered by the samples."""
        ranges: list[tuple[datetime, datetime]] = []
        for sample in self._samples:
            if ranges and ranges[-1][1] == sample.start:
                ranges[-1] = (ranges[-1][0], sample.end)
            else:
                ranges.append((sample.start, sample.end))
        return ranges

    def covers(self, start: datetime, end: datetime) -> bool:
        return any(r_start <= start and end <= r_end for r_start, r_end in self.covered_ranges())


def parse_spot_prices(text: str) -> list[PriceSample]:
    """Parse a spot price blob into price samples."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SpotPriceError(f"Invalid YAML: {e}")

    if data is None:
        return []
    entries = data.get("spotPrices") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise SpotPriceError("Expected a list of spot prices", subject="spotPrices")

    samples = []
    for entry in entries:
        try:
            start = parse_instant(entry["from"])
            end = parse_instant(entry["till"])
            if "price" in entry:
                price = float(entry["price"])
            else:
                price = sum(float(entry.get(c) or 0.0) for c in PRICE_COMPONENTS)
        except (KeyError, TypeError, ValueError) as e:
            raise SpotPriceError(f"Invalid spot price entry {entry!r}: {e}")

        duration = int((end - start).total_seconds())
        if duration <= 0:
            _LOGGER.warning("Skipping empty spot price bucket at %s", start.isoformat())
            continue
        samples.append(PriceSample(start=start, duration_seconds=duration, price=price))

    return samples


def read_spot_prices_file(path: Path) -> str:
    """Read a spot price blob exported to disk."""
    with open(path, encoding="utf-8") as f:
        return f.read()


def fetch_spot_prices(url: str, timeout: float = 30.0) -> str:
    """Fetch a spot price blob over HTTP."""
    try:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise SpotPriceError(f"HTTP error {e.response.status_code}", subject=url)
    except httpx.HTTPError as e:
        raise SpotPriceError(f"Network error: {e}", subject=url)
    return response.text


def save_spot_prices(text: str, key: str, db_path: Path | None = None) -> int:
    """Validate a spot price blob and store it. Returns the number of samples."""
    samples = parse_spot_prices(text)
    PriceForecast(samples)
    db.put_blob(key, text, db_path)
    return len(samples)


def load_forecast(
    key: str,
    start: datetime,
    end: datetime,
    db_path: Path | None = None,
) -> PriceForecast:
    """Load the stored forecast, restricted to samples overlapping [start, end)."""
    text = db.get_blob(key, db_path)
    if text is None:
        _LOGGER.warning("No spot prices stored under '%s'", key)
        return PriceForecast([])
    forecast = PriceForecast(parse_spot_prices(text)).between(start, end)
    _LOGGER.info(
        "Loaded %d spot price(s) between %s and %s", len(forecast), start.isoformat(), end.isoformat()
    )
    return forecast
