r"""backend\demandcast\services\anomaly_service.py

Statistical anomaly detection over a store's sales and inventory.

Two independent scans run per store:

* demand anomalies per SKU (spikes, drops, weekday/weekend pattern shifts)
  computed from daily sales totals over a trailing window;
* inventory data-quality anomalies per stock row (negative stock, stale
  counts, over-reservation).

Detection is a pure function of its inputs and an ``as_of`` reference time,
so running it twice over the same data yields the same anomalies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from ..core.config import MIN_SEASONAL_POINTS, THRESHOLDS_FILE, coerce_setting, load_config_file
from ..core.errors import RecordNotFoundError, StoreNotFoundError
from ..core.observability import ANOMALIES_DETECTED, SKU_FAILURES
from ..models.schemas import (
    Anomaly,
    AnomalyDetectionResult,
    AnomalySummary,
    InventorySnapshot,
    SalesRecord,
    Severity,
)
from . import statistics as stats
from .storage import InventoryStore, as_utc, utcnow

LOGGER = logging.getLogger(__name__)

_ACTION_STATUS = {"accept": "accepted", "ignore": "ignored"}


@dataclass(frozen=True, slots=True)
class AnomalyThresholds:
    """Detection thresholds read from ``thresholds.yaml``."""

    anomaly_window_days: int = 30
    min_daily_points: int = 7
    spike_recent_days: int = 3
    spike_sigma: float = 2.0
    spike_mean_multiple: float = 2.0
    spike_high_multiple: float = 3.0
    drop_ratio: float = 0.3
    drop_high_ratio: float = 0.1
    drop_min_mean: float = 5.0
    weekend_high_ratio: float = 2.0
    weekend_low_ratio: float = 0.3
    min_weekday_observations: int = 3
    min_weekend_observations: int = 2
    stale_days: int = 30
    stale_medium_days: int = 60
    reserved_ratio: float = 0.8

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "AnomalyThresholds":
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, raw in values.items():
            if key in known and raw is not None:
                kwargs[key] = coerce_setting(known[key].default, raw)
        if kwargs.get("min_daily_points", MIN_SEASONAL_POINTS) < MIN_SEASONAL_POINTS:
            LOGGER.warning(
                "min_daily_points=%s is below %d; using %d",
                kwargs["min_daily_points"],
                MIN_SEASONAL_POINTS,
                MIN_SEASONAL_POINTS,
            )
            kwargs["min_daily_points"] = MIN_SEASONAL_POINTS
        return cls(**kwargs)

    @classmethod
    def load(cls, config_root: str) -> "AnomalyThresholds":
        return cls.from_mapping(load_config_file(config_root, THRESHOLDS_FILE))


DEFAULT_THRESHOLDS = AnomalyThresholds()


def _make_anomaly(
    store_id: str,
    sku_id: str,
    kind: str,
    severity: Severity,
    description: str,
    as_of: Optional[datetime],
) -> Anomaly:
    return Anomaly(
        store_id=store_id,
        sku_id=sku_id,
        type=kind,
        severity=severity,
        description=description,
        detected_at=as_of,
    )


def _fmt_qty(value: float) -> str:
    return f"{value:g}"


def _pct(value: float) -> int:
    # half-up like Math.round so 12.5% reads as 13%
    return int(np.floor(value * 100 + 0.5))


# ---------------------------------------------------------------------------
# Demand anomalies


def classify_spike(
    daily_qty: float,
    mean: float,
    std: float,
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> Optional[Severity]:
    """Severity of a spike on a day with ``daily_qty`` units, or ``None``."""

    threshold = mean + thresholds.spike_sigma * std
    if daily_qty > threshold and daily_qty > thresholds.spike_mean_multiple * mean:
        return "high" if daily_qty > thresholds.spike_high_multiple * mean else "medium"
    return None


def classify_drop(
    recent_avg: float,
    mean: float,
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> Optional[Severity]:
    if recent_avg < thresholds.drop_ratio * mean and mean > thresholds.drop_min_mean:
        return "high" if recent_avg < thresholds.drop_high_ratio * mean else "medium"
    return None


def weekday_weekend_pattern(
    observations: Any,
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> Optional[str]:
    """Describe an unusual weekend/weekday demand ratio, or return ``None``.

    Works on raw observations rather than daily totals.  Saturday and Sunday
    count as weekend.  A zero weekday average has no meaningful ratio and is
    skipped.
    """

    series = stats.as_series(observations)
    if series.empty:
        return None

    weekend_mask = np.array([stats.is_weekend(dow) for dow in stats.day_of_week(series.index)], dtype=bool)
    weekend = series[weekend_mask]
    weekday = series[~weekend_mask]
    if len(weekday) < thresholds.min_weekday_observations or len(weekend) < thresholds.min_weekend_observations:
        return None

    weekday_avg = stats.mean(weekday)
    if weekday_avg == 0:
        return None
    ratio = stats.mean(weekend) / weekday_avg

    if ratio > thresholds.weekend_high_ratio:
        return f"Unusual weekend pattern: {_pct(ratio - 1)}% higher than weekdays"
    if ratio < thresholds.weekend_low_ratio:
        return f"Unusual weekend pattern: {_pct(1 - ratio)}% lower than weekdays"
    return None


def detect_sku_anomalies(
    store_id: str,
    sku_id: str,
    sales: Sequence[Any],
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
    as_of: Optional[datetime] = None,
) -> List[Anomaly]:
    """Demand spike, drop and pattern-change anomalies for one SKU.

    ``sales`` are the raw observations inside the detection window.  SKUs
    with fewer than ``min_daily_points`` daily totals are skipped.
    """

    daily = stats.daily_aggregate(sales)
    if len(daily) < max(MIN_SEASONAL_POINTS, thresholds.min_daily_points):
        return []

    quantities = daily.to_numpy(dtype=float)
    mean = stats.mean(quantities)
    std = stats.stddev(quantities, mean)
    recent = quantities[-thresholds.spike_recent_days:]

    def _anomaly(kind: str, severity: Severity, description: str) -> Anomaly:
        return _make_anomaly(store_id, sku_id, kind, severity, description, as_of)

    anomalies: List[Anomaly] = []
    for qty in recent:
        severity = classify_spike(qty, mean, std, thresholds)
        if severity is not None:
            anomalies.append(
                _anomaly(
                    "demand_spike",
                    severity,
                    f"Demand spike detected: {_fmt_qty(qty)} units ({_pct(qty / mean - 1)}% above average)",
                )
            )

    recent_avg = stats.mean(recent)
    severity = classify_drop(recent_avg, mean, thresholds)
    if severity is not None:
        anomalies.append(
            _anomaly(
                "demand_drop",
                severity,
                f"Significant demand drop detected: {_pct(1 - recent_avg / mean)}% below average",
            )
        )

    pattern = weekday_weekend_pattern(sales, thresholds)
    if pattern is not None:
        anomalies.append(_anomaly("pattern_change", "medium", pattern))

    return anomalies


# ---------------------------------------------------------------------------
# Inventory anomalies


def detect_inventory_anomalies(
    store_id: str,
    inventory: Iterable[InventorySnapshot],
    as_of: datetime,
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> List[Anomaly]:
    """Data-quality anomalies for the store's current stock rows."""

    as_of = as_utc(as_of)
    anomalies: List[Anomaly] = []

    for row in inventory:
        on_hand = row.on_hand or 0
        reserved = row.reserved or 0

        if on_hand < 0:
            anomalies.append(
                _make_anomaly(
                    store_id, row.sku_id, "negative_stock", "high", f"Negative stock detected: {on_hand} units", as_of
                )
            )

        if row.last_counted_at is not None:
            days_since = (as_of - as_utc(row.last_counted_at)).days
            if days_since > thresholds.stale_days:
                anomalies.append(
                    _make_anomaly(
                        store_id,
                        row.sku_id,
                        "stale_inventory",
                        "medium" if days_since > thresholds.stale_medium_days else "low",
                        f"Inventory not counted for {days_since} days",
                        as_of,
                    )
                )

        if on_hand > 0 and reserved > thresholds.reserved_ratio * on_hand:
            anomalies.append(
                _make_anomaly(
                    store_id,
                    row.sku_id,
                    "excessive_reserved",
                    "medium",
                    f"High reserved stock: {reserved}/{on_hand} units ({_pct(reserved / on_hand)}%)",
                    as_of,
                )
            )

    return anomalies


# ---------------------------------------------------------------------------
# Service


class AnomalyDetectionService:
    """Run both anomaly scans for a store and manage anomaly review actions."""

    def __init__(
        self,
        store: InventoryStore,
        config_root: str = "configs",
        thresholds: Optional[AnomalyThresholds] = None,
    ) -> None:
        self.store = store
        self.config_root = config_root
        self._thresholds = thresholds

    # ------------------------------------------------------------------
    @property
    def thresholds(self) -> AnomalyThresholds:
        return self._thresholds or AnomalyThresholds.load(self.config_root)

    # ------------------------------------------------------------------
    def detect_anomalies(self, store_id: str, as_of: Optional[datetime] = None) -> AnomalyDetectionResult:
        """Return the anomalies found for ``store_id`` at ``as_of`` (default now).

        Nothing is persisted; see :meth:`detect_and_record`.
        """

        if self.store.get_store(store_id) is None:
            raise StoreNotFoundError(store_id)

        thresholds = self.thresholds
        as_of = as_utc(as_of) if as_of is not None else utcnow()
        start = as_of - timedelta(days=thresholds.anomaly_window_days)
        sales = self.store.get_sales_by_store(store_id, start, as_of)

        by_sku: dict[str, List[SalesRecord]] = {}
        for record in sales:
            by_sku.setdefault(record.sku_id, []).append(record)

        anomalies: List[Anomaly] = []
        for sku_id, records in by_sku.items():
            try:
                anomalies.extend(detect_sku_anomalies(store_id, sku_id, records, thresholds, as_of))
            except Exception:
                LOGGER.exception("Error detecting demand anomalies for SKU %s in store %s", sku_id, store_id)
                SKU_FAILURES.labels("anomaly").inc()

        anomalies.extend(
            detect_inventory_anomalies(
                store_id, self.store.get_inventory_by_store(store_id), as_of, thresholds
            )
        )

        summary = AnomalySummary.from_anomalies(anomalies)
        LOGGER.info(
            "Store %s anomaly scan: %d found (high=%d medium=%d low=%d)",
            store_id,
            summary.total,
            summary.high_severity,
            summary.medium_severity,
            summary.low_severity,
        )
        return AnomalyDetectionResult(anomalies=anomalies, summary=summary)

    # ------------------------------------------------------------------
    def detect_and_record(self, store_id: str, as_of: Optional[datetime] = None) -> AnomalyDetectionResult:
        """Detect anomalies and persist each of them."""

        result = self.detect_anomalies(store_id, as_of)
        stored = [self.store.create_anomaly(anomaly) for anomaly in result.anomalies]
        for anomaly in stored:
            ANOMALIES_DETECTED.labels(anomaly.type, anomaly.severity).inc()
        return AnomalyDetectionResult(anomalies=stored, summary=result.summary)

    # ------------------------------------------------------------------
    def process_anomaly_action(self, anomaly_id: str, action: str) -> Anomaly:
        status = _ACTION_STATUS.get(action)
        if status is None:
            raise ValueError(f"Unsupported anomaly action '{action}'; expected accept or ignore")
        if self.store.get_anomaly(anomaly_id) is None:
            raise RecordNotFoundError("Anomaly", anomaly_id)
        return self.store.update_anomaly_status(anomaly_id, status)
