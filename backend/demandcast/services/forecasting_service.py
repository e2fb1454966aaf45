r"""backend\demandcast\services\forecasting_service.py

Demand forecasting built on a level + weekly-seasonal decomposition.

For each SKU the engine estimates an overall level (mean daily demand) and
seven day-of-week deviations from it, then projects that profile forward one
value per day.  Prediction bands widen with the square root of the horizon
distance using the spread of the in-sample residuals.  SKUs with too little
history fall back to a flat baseline built from the median of whatever they
have.

The numeric work lives in module-level functions (kept top-level for
straightforward unit testing); ``ForecastingService`` only wires them to the
store, applies configuration and handles per-SKU failures during a batch.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..core.config import MIN_SEASONAL_POINTS, SETTINGS_FILE, coerce_setting, load_config_file
from ..core.errors import ComputationError, InsufficientDataError, StoreNotFoundError
from ..core.observability import FORECASTS_GENERATED, SKU_FAILURES
from ..models.schemas import Forecast, ForecastMetadata, ForecastPayload, ForecastRunSummary
from . import statistics as stats
from .storage import InventoryStore, utcnow

LOGGER = logging.getLogger(__name__)

BASELINE_MODEL = "baseline"
SEASONAL_MODEL = "weekly_seasonal"
HOURS_PER_DAY = 24


@dataclass(frozen=True, slots=True)
class ForecastConfig:
    """Forecast parameters read from ``settings.yaml``."""

    horizon_hours: int = 168
    history_window_days: int = 30
    min_history_points: int = 7
    interval_z: float = 1.28
    baseline_default_value: float = 5.0
    baseline_p10_multiplier: float = 0.6
    baseline_p90_multiplier: float = 1.8
    baseline_accuracy: float = 60.0
    backtest_holdout_days: int = 7
    fallback_accuracy: float = 70.0

    # settings.yaml key -> field name, where they differ
    _ALIASES = {"forecast_horizon_hours": "horizon_hours"}

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ForecastConfig":
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, raw in values.items():
            name = cls._ALIASES.get(key, key)
            if name in known and raw is not None:
                kwargs[name] = coerce_setting(known[name].default, raw)
        if kwargs.get("min_history_points", MIN_SEASONAL_POINTS) < MIN_SEASONAL_POINTS:
            LOGGER.warning(
                "min_history_points=%s is below %d; using %d",
                kwargs["min_history_points"],
                MIN_SEASONAL_POINTS,
                MIN_SEASONAL_POINTS,
            )
            kwargs["min_history_points"] = MIN_SEASONAL_POINTS
        return cls(**kwargs)

    @classmethod
    def load(cls, config_root: str) -> "ForecastConfig":
        return cls.from_mapping(load_config_file(config_root, SETTINGS_FILE))


DEFAULT_CONFIG = ForecastConfig()


# ---------------------------------------------------------------------------
# Helper utilities


def forecast_points(horizon_hours: int) -> int:
    """Number of daily forecast values covering ``horizon_hours``."""

    if horizon_hours <= 0:
        raise ValueError("horizon_hours must be a positive integer")
    return math.ceil(horizon_hours / HOURS_PER_DAY)


def baseline_forecast(
    quantities: Sequence[float],
    points: int,
    config: ForecastConfig = DEFAULT_CONFIG,
) -> ForecastPayload:
    """Flat forecast for SKUs without enough history for the seasonal model."""

    if len(quantities):
        value = max(1.0, stats.median(quantities))
        notes = (
            f"Insufficient historical data ({len(quantities)} points) - "
            "using median baseline forecast"
        )
    else:
        value = float(config.baseline_default_value)
        notes = "No historical data - using default baseline forecast"

    return ForecastPayload(
        median=[value] * points,
        p10=[value * config.baseline_p10_multiplier] * points,
        p90=[value * config.baseline_p90_multiplier] * points,
        metadata=ForecastMetadata(model=BASELINE_MODEL, accuracy=config.baseline_accuracy, notes=notes),
    )


def fit_level_and_seasonality(history: pd.Series) -> Tuple[float, List[float], float]:
    """Return ``(level, seasonality, sigma)`` for a demand history.

    ``sigma`` is the population standard deviation of the residuals around
    the level + seasonal prediction.
    """

    if history.empty:
        raise InsufficientDataError("cannot fit a seasonal profile to an empty history")

    level = stats.mean(history)
    seasonality = stats.weekly_seasonality(history, level)
    resid = stats.residuals(history, level, seasonality)
    sigma = stats.stddev(resid, stats.mean(resid))
    return level, seasonality, sigma


def project(
    level: float,
    seasonality: Sequence[float],
    sigma: float,
    last_dow: int,
    points: int,
    z_value: float,
) -> Tuple[List[float], List[float], List[float]]:
    """Project the fitted profile ``points`` days past the day ``last_dow``."""

    steps = np.arange(points)
    dows = (last_dow + 1 + steps) % stats.DAYS_IN_WEEK
    base = level + np.asarray(seasonality, dtype=float)[dows]
    spread = z_value * sigma * np.sqrt(steps + 1)

    median = np.maximum(0.0, base)
    p10 = np.maximum(0.0, base - spread)
    p90 = np.maximum(0.0, base + spread)
    return median.tolist(), p10.tolist(), p90.tolist()


def backtest_accuracy(history: pd.Series, config: ForecastConfig = DEFAULT_CONFIG) -> float:
    """Accuracy (0-100) of the seasonal model on the trailing holdout.

    The last ``backtest_holdout_days`` observations are predicted from a fit
    on everything before them; MAPE is taken over nonzero actuals only.
    """

    holdout = config.backtest_holdout_days
    train, test = history.iloc[:-holdout], history.iloc[-holdout:]
    if holdout <= 0 or len(train) < max(MIN_SEASONAL_POINTS, config.min_history_points):
        return config.fallback_accuracy

    level, seasonality, _ = fit_level_and_seasonality(train)
    predicted = np.maximum(
        0.0, level + np.asarray(seasonality, dtype=float)[stats.day_of_week(test.index)]
    )
    actual = test.to_numpy(dtype=float)
    nonzero = actual != 0
    if not nonzero.any():
        return config.fallback_accuracy

    mape = float(np.mean(np.abs((actual[nonzero] - predicted[nonzero]) / actual[nonzero])))
    return float(min(100.0, max(0.0, (1.0 - mape) * 100.0)))


def generate_forecast(
    history: Any,
    horizon_hours: int,
    config: ForecastConfig = DEFAULT_CONFIG,
) -> ForecastPayload:
    """Return median/P10/P90 bands for ``horizon_hours`` of demand.

    Parameters
    ----------
    history:
        Ordered demand observations accepted by :func:`statistics.as_series`
        (daily totals when driven by :class:`ForecastingService`).
    horizon_hours:
        Forecast horizon; one value is produced per started day.
    config:
        Model parameters.

    Raises
    ------
    ValueError
        When ``horizon_hours`` is not positive.
    ComputationError
        When the projection produced NaN or infinite values.
    """

    points = forecast_points(horizon_hours)
    series = stats.as_series(history)

    if len(series) < max(MIN_SEASONAL_POINTS, config.min_history_points):
        return baseline_forecast(series.to_numpy(dtype=float), points, config)

    stats.require_finite(series, "history")
    level, seasonality, sigma = fit_level_and_seasonality(series)
    last_dow = stats.weekday_of(series.index[-1])
    median, p10, p90 = project(level, seasonality, sigma, last_dow, points, config.interval_z)

    for label, values in (("median", median), ("p10", p10), ("p90", p90)):
        stats.require_finite(values, label)
    accuracy = backtest_accuracy(series, config)
    if not math.isfinite(accuracy):
        raise ComputationError("backtest accuracy is not finite")

    return ForecastPayload(
        median=median,
        p10=p10,
        p90=p90,
        metadata=ForecastMetadata(
            model=SEASONAL_MODEL,
            accuracy=accuracy,
            notes=f"Forecast based on {len(series)} historical data points",
        ),
    )


# ---------------------------------------------------------------------------
# Core service implementation


class ForecastingService:
    """Generate and persist per-SKU forecasts for a store."""

    def __init__(
        self,
        store: InventoryStore,
        config_root: str = "configs",
        config: Optional[ForecastConfig] = None,
    ) -> None:
        self.store = store
        self.config_root = config_root
        self._config = config

    # ------------------------------------------------------------------
    @property
    def config(self) -> ForecastConfig:
        """Injected configuration, else the current contents of settings.yaml."""

        return self._config or ForecastConfig.load(self.config_root)

    # ------------------------------------------------------------------
    def forecast_sku(
        self,
        store_id: str,
        sku_id: str,
        sales: Sequence[Any],
        config: Optional[ForecastConfig] = None,
        window: Optional[Tuple[datetime, datetime]] = None,
    ) -> Forecast:
        """Build (but do not persist) the forecast for one SKU from raw sales.

        With a ``(start, end)`` window, days without sales count as zero
        demand.  A SKU with no sales at all keeps an empty history and gets
        the default baseline.
        """

        config = config or self.config
        daily = stats.daily_aggregate(sales)
        if window is not None and not daily.empty:
            daily = stats.fill_missing_days(daily, *window)
        payload = generate_forecast(daily, config.horizon_hours, config)
        return Forecast(
            store_id=store_id,
            sku_id=sku_id,
            horizon_hours=config.horizon_hours,
            **payload.model_dump(),
        )

    # ------------------------------------------------------------------
    def run_store_forecasts(self, store_id: str, now: Optional[datetime] = None) -> ForecastRunSummary:
        """Forecast every active SKU of the store's organization.

        A failing SKU is logged and skipped; nothing is persisted for it.
        """

        store = self.store.get_store(store_id)
        if store is None:
            raise StoreNotFoundError(store_id)

        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        config = self.config
        start = now - timedelta(days=config.history_window_days)

        skus = [sku for sku in self.store.get_skus_by_organization(store.organization_id) if sku.is_active]
        sales = self.store.get_sales_by_store(store_id, start, now)
        by_sku: dict[str, list] = {}
        for record in sales:
            by_sku.setdefault(record.sku_id, []).append(record)

        summary = ForecastRunSummary(store_id=store_id, skus_total=len(skus))
        for sku in skus:
            try:
                forecast = self.forecast_sku(store_id, sku.id, by_sku.get(sku.id, []), config, (start, now))
                self.store.save_forecast(forecast)
            except Exception:
                LOGGER.exception("Error forecasting SKU %s (%s) for store %s", sku.code, sku.id, store_id)
                SKU_FAILURES.labels("forecast").inc()
                summary.failed_sku_ids.append(sku.id)
                continue

            FORECASTS_GENERATED.labels(forecast.metadata.model).inc()
            summary.forecasts_created += 1

        LOGGER.info(
            "Store %s forecast run: %d/%d SKUs forecast, %d failed",
            store_id,
            summary.forecasts_created,
            summary.skus_total,
            len(summary.failed_sku_ids),
        )
        return summary
