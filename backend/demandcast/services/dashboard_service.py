r"""backend\demandcast\services\dashboard_service.py

Store-level roll-ups for the review dashboard: pending work counts, forecast
quality and stock cover, and the SKUs closest to running out.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.errors import StoreNotFoundError
from ..models.schemas import DashboardMetrics, Forecast, RiskLevel, RiskSku
from . import statistics as stats
from .storage import InventoryStore

LOGGER = logging.getLogger(__name__)

HIGH_RISK_ON_HAND = 10
MEDIUM_RISK_ON_HAND = 50
MIN_STOCK_DAYS = 0.1


def risk_level(on_hand: int) -> RiskLevel:
    if on_hand < HIGH_RISK_ON_HAND:
        return "high"
    if on_hand < MEDIUM_RISK_ON_HAND:
        return "medium"
    return "low"


def daily_demand(forecast: Optional[Forecast]) -> Optional[float]:
    """Mean forecast median per day, or ``None`` without a usable forecast."""

    if forecast is None or not forecast.median:
        return None
    return stats.mean(forecast.median)


def stock_days(on_hand: int, demand: Optional[float]) -> Optional[float]:
    if demand is None or demand <= 0:
        return None
    return max(MIN_STOCK_DAYS, on_hand / demand)


class DashboardService:
    """Read-only aggregations over a store's anomalies, reorders and stock."""

    def __init__(self, store: InventoryStore) -> None:
        self.store = store

    def _require_store(self, store_id: str) -> None:
        if self.store.get_store(store_id) is None:
            raise StoreNotFoundError(store_id)

    def metrics(self, store_id: str) -> DashboardMetrics:
        self._require_store(store_id)

        active_alerts = sum(1 for a in self.store.get_anomalies_by_store(store_id) if a.status == "pending")
        pending_reorders = sum(1 for r in self.store.get_reorders_by_store(store_id) if r.status == "pending")

        forecasts = {fc.sku_id: fc for fc in self.store.get_forecasts_by_store(store_id)}
        accuracies = [fc.metadata.accuracy for fc in forecasts.values() if fc.metadata.accuracy is not None]
        accuracy = stats.mean(accuracies) if accuracies else None

        # coverage only over rows that have forecast demand
        on_hand_total = 0.0
        demand_total = 0.0
        for row in self.store.get_inventory_by_store(store_id):
            demand = daily_demand(forecasts.get(row.sku_id))
            if demand is None:
                continue
            on_hand_total += row.on_hand
            demand_total += demand
        coverage = on_hand_total / demand_total if demand_total > 0 else None

        return DashboardMetrics(
            store_id=store_id,
            active_alerts=active_alerts,
            reorder_suggestions=pending_reorders,
            forecast_accuracy=accuracy,
            stock_coverage_days=coverage,
        )

    def top_risk_skus(self, store_id: str, limit: int = 10) -> List[RiskSku]:
        """Stock rows with known SKUs, lowest ``on_hand`` first."""

        self._require_store(store_id)
        if limit <= 0:
            raise ValueError("limit must be a positive integer")

        ranked: List[RiskSku] = []
        for row in sorted(self.store.get_inventory_by_store(store_id), key=lambda r: (r.on_hand, r.sku_id)):
            sku = self.store.get_sku(row.sku_id)
            if sku is None:
                LOGGER.debug("Inventory row for unknown SKU %s in store %s", row.sku_id, store_id)
                continue
            ranked.append(
                RiskSku(
                    sku=sku,
                    inventory=row,
                    risk_level=risk_level(row.on_hand),
                    stock_days=stock_days(row.on_hand, daily_demand(self.store.get_forecast(store_id, row.sku_id))),
                )
            )
            if len(ranked) == limit:
                break
        return ranked
