"""Tests for spot price parsing and the price forecast."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest

from tapwater.errors import SpotPriceError
from tapwater.forecast import (
    PriceForecast,
    fetch_spot_prices,
    load_forecast,
    parse_spot_prices,
    save_spot_prices,
)
from tapwater.models import PriceSample

T0 = datetime(2024, 3, 4, 22, 0, tzinfo=timezone.utc)

BLOB = """
spotPrices:
  - from: 2024-03-04T22:00:00Z
    till: 2024-03-04T23:00:00Z
    marketPrice: 0.05
    marketPriceTax: 0.01
    sourcingMarkupPrice: 0.02
    energyTaxPrice: 0.1
  - from: "2024-03-04T23:00:00+00:00"
    till: "2024-03-05T00:00:00+00:00"
    price: 0.25
"""


def hourly(start, prices):
    return [
        PriceSample(start=start + timedelta(hours=i), duration_seconds=3600, price=p)
        for i, p in enumerate(prices)
    ]


@pytest.fixture
def mock_get():
    with patch("tapwater.forecast.httpx.get") as mock:
        yield mock


def test_parse_spot_prices():
    samples = parse_spot_prices(BLOB)

    assert len(samples) == 2
    assert samples[0].start == T0
    assert samples[0].duration_seconds == 3600
    assert samples[0].price == pytest.approx(0.18)
    assert samples[1].start == T0 + timedelta(hours=1)
    assert samples[1].price == 0.25


def test_parse_spot_prices_skips_empty_buckets():
    blob = "spotPrices:\n  - {from: '2024-03-04T22:00:00Z', till: '2024-03-04T22:00:00Z', price: 1}\n"
    assert parse_spot_prices(blob) == []


@pytest.mark.parametrize(
    "blob",
    [
        "spotPrices: 12",
        "spotPrices:\n  - {till: '2024-03-04T22:00:00Z', price: 1}",
        "spotPrices:\n  - {from: yesterday, till: today, price: 1}",
        "spotPrices: [",
    ],
)
def test_parse_spot_prices_invalid(blob):
    with pytest.raises(SpotPriceError):
        parse_spot_prices(blob)


def test_forecast_sorts_samples():
    samples = hourly(T0, [0.3, 0.2, 0.1])
    forecast = PriceForecast(list(reversed(samples)))
    assert [s.start for s in forecast] == [s.start for s in samples]


def test_forecast_rejects_overlapping_samples():
    samples = hourly(T0, [0.3, 0.2])
    samples.append(PriceSample(T0 + timedelta(minutes=30), 3600, 0.1))
    with pytest.raises(SpotPriceError, match="overlap"):
        PriceForecast(samples)


def test_covered_ranges_tolerate_gaps():
    samples = hourly(T0, [0.3, 0.2]) + hourly(T0 + timedelta(hours=3), [0.1])
    forecast = PriceForecast(samples)

    assert forecast.covered_ranges() == [
        (T0, T0 + timedelta(hours=2)),
        (T0 + timedelta(hours=3), T0 + timedelta(hours=4)),
    ]
    assert forecast.covers(T0, T0 + timedelta(hours=2))
    assert not forecast.covers(T0, T0 + timedelta(hours=4))


def test_overlapping_includes_partial_buckets():
    forecast = PriceForecast(hourly(T0, [0.1, 0.2, 0.3, 0.4]))
    result = forecast.overlapping(T0 + timedelta(minutes=30), T0 + timedelta(hours=2))
    assert [s.price for s in result] == [0.1, 0.2]


def test_between_restricts_forecast():
    forecast = PriceForecast(hourly(T0, [0.1, 0.2, 0.3, 0.4]))
    assert len(forecast.between(T0 + timedelta(hours=1), T0 + timedelta(hours=3))) == 2


def test_save_and_load_forecast(tmp_path):
    db_path = tmp_path / "planner.db"
    assert save_spot_prices(BLOB, "spot-prices", db_path) == 2

    forecast = load_forecast("spot-prices", T0 + timedelta(minutes=30), T0 + timedelta(hours=5), db_path)
    assert len(forecast) == 2


def test_load_forecast_without_prices(tmp_path):
    forecast = load_forecast("spot-prices", T0, T0 + timedelta(hours=12), tmp_path / "planner.db")
    assert len(forecast) == 0


def test_fetch_spot_prices_success(mock_get):
    request = httpx.Request("GET", "http://prices.local/state.yaml")
    mock_get.return_value = httpx.Response(200, text=BLOB, request=request)

    assert fetch_spot_prices("http://prices.local/state.yaml") == BLOB
    mock_get.assert_called_once_with("http://prices.local/state.yaml", timeout=30.0)


def test_fetch_spot_prices_http_error(mock_get):
    request = httpx.Request("GET", "http://prices.local/state.yaml")
    mock_get.return_value = httpx.Response(404, request=request)

    with pytest.raises(SpotPriceError, match="404"):
        fetch_spot_prices("http://prices.local/state.yaml")


def test_fetch_spot_prices_network_error(mock_get):
    mock_get.side_effect = httpx.ConnectError("Connection refused")

    with pytest.raises(SpotPriceError, match="Network error"):
        fetch_spot_prices("http://prices.local/state.yaml")
