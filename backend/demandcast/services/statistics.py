r"""backend\demandcast\services\statistics.py

Numeric primitives shared by the forecast and anomaly engines.

Every helper is a pure function: inputs are never mutated and no state is
kept between calls, so concurrent store runs can share them freely.

Day-of-week ordinals follow the 0=Sunday .. 6=Saturday convention throughout
the package.  pandas numbers Monday as 0, so the conversion happens once, in
:func:`day_of_week`.  Timestamps are normalised to UTC; naive timestamps are
taken to already be UTC.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence

import numpy as np
import pandas as pd

from ..core.errors import ComputationError, InsufficientDataError

DAYS_IN_WEEK = 7
WEEKEND_DAYS = frozenset({0, 6})  # Sunday, Saturday


def _to_array(values: Iterable[float]) -> np.ndarray:
    if isinstance(values, (pd.Series, np.ndarray)):
        return np.asarray(values, dtype=float)
    return np.asarray(list(values), dtype=float)


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean; raises :class:`InsufficientDataError` on empty input."""

    arr = _to_array(values)
    if arr.size == 0:
        raise InsufficientDataError("mean requires at least one observation")
    return float(np.mean(arr))


def stddev(values: Iterable[float], center: float) -> float:
    """Population standard deviation (divides by N) around ``center``."""

    arr = _to_array(values)
    if arr.size == 0:
        raise InsufficientDataError("stddev requires at least one observation")
    return float(np.sqrt(np.mean((arr - center) ** 2)))


def median(values: Iterable[float]) -> float:
    arr = _to_array(values)
    if arr.size == 0:
        raise InsufficientDataError("median requires at least one observation")
    return float(np.median(arr))


def require_finite(values: Iterable[float], label: str) -> None:
    """Raise :class:`ComputationError` if ``values`` holds NaN or infinity."""

    arr = _to_array(values)
    if arr.size and not np.isfinite(arr).all():
        raise ComputationError(f"{label} contains non-finite values")


# ---------------------------------------------------------------------------
# Time series helpers


def as_series(observations: Any) -> pd.Series:
    """Return ``observations`` as a float series indexed by UTC timestamps.

    Parameters
    ----------
    observations:
        A ``pd.Series`` indexed by timestamps, an iterable of
        ``(timestamp, quantity)`` pairs, or an iterable of objects exposing
        ``timestamp`` and ``quantity`` attributes (e.g. ``SalesRecord``).

    Returns
    -------
    ``pd.Series`` of floats with a UTC ``DatetimeIndex``.  The input order is
    preserved; nothing is sorted or aggregated.
    """

    if isinstance(observations, pd.Series):
        index = pd.DatetimeIndex(pd.to_datetime(observations.index, utc=True), name="timestamp")
        return pd.Series(observations.to_numpy(dtype=float), index=index, name=observations.name)

    timestamps: list[Any] = []
    quantities: list[float] = []
    for item in observations:
        if hasattr(item, "timestamp") and hasattr(item, "quantity"):
            timestamp, quantity = item.timestamp, item.quantity
        else:
            timestamp, quantity = item
        timestamps.append(timestamp)
        quantities.append(float(quantity))

    index = pd.DatetimeIndex(pd.to_datetime(timestamps, utc=True), name="timestamp")
    return pd.Series(quantities, index=index, dtype=float)


def day_of_week(index: pd.DatetimeIndex) -> np.ndarray:
    """Return 0=Sunday .. 6=Saturday ordinals for every timestamp in ``index``."""

    return (np.asarray(index.dayofweek, dtype=int) + 1) % DAYS_IN_WEEK


def weekday_of(timestamp: Any) -> int:
    """Return the 0=Sunday .. 6=Saturday ordinal of a single timestamp."""

    ts = pd.Timestamp(timestamp)
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return (int(ts.dayofweek) + 1) % DAYS_IN_WEEK


def is_weekend(dow: int) -> bool:
    return dow in WEEKEND_DAYS


def weekly_counts(observations: Any) -> List[int]:
    """Number of observations falling on each day of week."""

    series = as_series(observations)
    counts = np.bincount(day_of_week(series.index), minlength=DAYS_IN_WEEK)
    return [int(c) for c in counts]


def weekly_seasonality(observations: Any, overall_mean: float) -> List[float]:
    """Per-weekday deviation of the bucket average from ``overall_mean``.

    Returns seven values indexed 0=Sunday .. 6=Saturday.  Weekdays without
    observations get a deviation of 0.
    """

    series = as_series(observations)
    if series.empty:
        return [0.0] * DAYS_IN_WEEK

    bucket_means = series.groupby(day_of_week(series.index)).mean()
    return [
        float(bucket_means.loc[dow] - overall_mean) if dow in bucket_means.index else 0.0
        for dow in range(DAYS_IN_WEEK)
    ]


def residuals(observations: Any, center: float, seasonality: Sequence[float]) -> pd.Series:
    """Actual minus level+seasonal prediction, one value per observation."""

    series = as_series(observations)
    if len(seasonality) != DAYS_IN_WEEK:
        raise ValueError("seasonality must contain exactly 7 values")
    offsets = np.asarray(seasonality, dtype=float)[day_of_week(series.index)]
    predicted = center + offsets
    return pd.Series(series.to_numpy(dtype=float) - predicted, index=series.index, name="residual")


def daily_aggregate(observations: Any) -> pd.Series:
    """Sum observations into one total per UTC calendar date, ascending.

    Dates without observations are absent rather than zero-filled.
    """

    series = as_series(observations)
    if series.empty:
        return pd.Series(dtype=float, index=pd.DatetimeIndex([], tz="UTC", name="date"))

    daily = series.groupby(series.index.normalize()).sum().sort_index()
    daily.index.name = "date"
    return daily.astype(float)


def fill_missing_days(daily: pd.Series, start: Any, end: Any) -> pd.Series:
    """Reindex daily totals over every UTC date of ``[start, end)``, zero-filled.

    A window ending exactly at midnight does not include the date that is
    just beginning.
    """

    first = pd.Timestamp(start)
    last = pd.Timestamp(end)
    first = first.tz_localize("UTC") if first.tzinfo is None else first.tz_convert("UTC")
    last = last.tz_localize("UTC") if last.tzinfo is None else last.tz_convert("UTC")
    first = first.normalize()
    last = (last - pd.Timedelta(1, unit="ns")).normalize()
    if not daily.empty:
        # never drop an observed day
        first = min(first, daily.index.min())
        last = max(last, daily.index.max())
    if last < first:
        return daily.iloc[0:0]

    dates = pd.date_range(first, last, freq="D", name="date")
    return daily.reindex(dates, fill_value=0.0).astype(float)
