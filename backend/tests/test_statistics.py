from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

import pandas as pd
import pytest

from backend.demandcast.core.errors import ComputationError, InsufficientDataError
from backend.demandcast.models.schemas import SalesRecord
from backend.demandcast.services import statistics as stats

SUNDAY = datetime(2026, 10, 4, 12, tzinfo=timezone.utc)
MONDAY = SUNDAY + timedelta(days=1)
SATURDAY = SUNDAY + timedelta(days=6)


def test_mean_and_population_stddev() -> None:
    values = [2, 4, 4, 4, 5, 5, 7, 9]
    center = stats.mean(values)
    assert center == 5.0
    assert stats.stddev(values, center) == pytest.approx(2.0)
    assert stats.median([3, 1, 2]) == 2.0


@pytest.mark.parametrize("func", [stats.mean, stats.median, lambda xs: stats.stddev(xs, 0.0)])
def test_empty_input_raises_insufficient_data(func) -> None:
    with pytest.raises(InsufficientDataError):
        func([])


def test_insufficient_data_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        stats.mean([])


def test_require_finite_flags_nan() -> None:
    stats.require_finite([1.0, 2.0], "ok")
    with pytest.raises(ComputationError):
        stats.require_finite([1.0, float("nan")], "values")


def test_day_of_week_counts_from_sunday() -> None:
    index = pd.DatetimeIndex([SUNDAY, MONDAY, SATURDAY])
    assert list(stats.day_of_week(index)) == [0, 1, 6]
    assert stats.weekday_of(SUNDAY) == 0
    assert stats.weekday_of(datetime(2026, 10, 10)) == 6  # naive Saturday
    assert stats.is_weekend(0) and stats.is_weekend(6)
    assert not stats.is_weekend(3)


def test_weekly_seasonality_deviations_and_empty_buckets() -> None:
    history = [(SUNDAY, 10.0), (MONDAY, 20.0), (SUNDAY + timedelta(days=7), 10.0), (MONDAY + timedelta(days=7), 20.0)]
    overall = stats.mean(q for _, q in history)

    seasonality = stats.weekly_seasonality(history, overall)

    assert len(seasonality) == 7
    assert seasonality[0] == pytest.approx(-5.0)
    assert seasonality[1] == pytest.approx(5.0)
    assert seasonality[2:] == [0.0] * 5


def test_residuals_follow_input_order() -> None:
    history = [(MONDAY, 22.0), (SUNDAY, 9.0)]
    seasonality = [-5.0, 5.0, 0.0, 0.0, 0.0, 0.0, 0.0]

    resid = stats.residuals(history, 15.0, seasonality)

    assert list(resid) == pytest.approx([2.0, -1.0])


def test_residuals_reject_short_seasonality() -> None:
    with pytest.raises(ValueError):
        stats.residuals([(SUNDAY, 1.0)], 1.0, [0.0, 0.0])


def test_daily_aggregate_sums_per_utc_date() -> None:
    records = [
        SalesRecord(store_id="s", sku_id="k", timestamp=MONDAY, quantity=3),
        SalesRecord(store_id="s", sku_id="k", timestamp=SUNDAY, quantity=1),
        SalesRecord(store_id="s", sku_id="k", timestamp=SUNDAY + timedelta(hours=5), quantity=2),
        # 01:00 at +02:00 is still Sunday in UTC
        SalesRecord(
            store_id="s",
            sku_id="k",
            timestamp=datetime(2026, 10, 5, 1, tzinfo=timezone(timedelta(hours=2))),
            quantity=4,
        ),
    ]

    daily = stats.daily_aggregate(records)

    assert list(daily.index.date) == [SUNDAY.date(), MONDAY.date()]
    assert list(daily) == [7.0, 3.0]


def test_daily_aggregate_empty_and_weekly_counts() -> None:
    assert stats.daily_aggregate([]).empty
    counts = stats.weekly_counts([(SUNDAY, 1), (SATURDAY, 1), (SATURDAY + timedelta(days=7), 1)])
    assert counts == [1, 0, 0, 0, 0, 0, 2]


def test_as_series_accepts_pandas_series() -> None:
    raw = pd.Series([1.0, 2.0], index=pd.to_datetime(["2026-10-04", "2026-10-05"]))
    series = stats.as_series(raw)
    assert str(series.index.tz) == "UTC"
    assert list(series) == [1.0, 2.0]


def test_fill_missing_days_zero_fills_the_window() -> None:
    daily = stats.daily_aggregate([(SUNDAY, 4.0), (SUNDAY + timedelta(days=2), 6.0)])

    # window ends at Wednesday midnight, so Wednesday itself is not included
    filled = stats.fill_missing_days(daily, SUNDAY - timedelta(days=1, hours=12), datetime(2026, 10, 7, tzinfo=timezone.utc))

    assert list(filled) == [0.0, 4.0, 0.0, 6.0]
    assert filled.index[0].date() == SATURDAY.date() - timedelta(days=7)
    assert str(filled.index.tz) == "UTC"


def test_fill_missing_days_keeps_days_outside_the_window() -> None:
    daily = stats.daily_aggregate([(SATURDAY, 2.0)])

    filled = stats.fill_missing_days(daily, SUNDAY, MONDAY)

    assert filled.index[-1].date() == SATURDAY.date()
    assert list(filled) == [0.0] * 6 + [2.0]
