"""Generate reorder suggestions from forecasts and current stock positions."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Sequence

from ..core.config import SETTINGS_FILE, coerce_setting, load_config_file
from ..core.errors import RecordNotFoundError, StoreNotFoundError
from ..core.observability import REORDERS_CREATED, SKU_FAILURES
from ..models.schemas import (
    ForecastPayload,
    InventorySnapshot,
    ReorderAlternatives,
    ReorderRationale,
    ReorderRunSummary,
    ReorderSuggestion,
)
from .storage import InventoryStore

LOGGER = logging.getLogger(__name__)

_ACTION_STATUS = {"approve": "approved", "reject": "rejected"}


@dataclass(frozen=True, slots=True)
class ReorderConfig:
    default_lead_time_days: int = 7
    safety_stock_rate: float = 0.2
    aggressive_multiplier: float = 1.5
    persist_non_positive_reorders: bool = False

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ReorderConfig":
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, raw in values.items():
            if key in known and raw is not None:
                kwargs[key] = coerce_setting(known[key].default, raw)
        return cls(**kwargs)

    @classmethod
    def load(cls, config_root: str) -> "ReorderConfig":
        return cls.from_mapping(load_config_file(config_root, SETTINGS_FILE))


DEFAULT_CONFIG = ReorderConfig()


# ---------------------------------------------------------------------------
def ceil_quantity(value: float) -> int:
    """Ceil ``value`` after discarding floating-point noise (140 * 0.2 -> 28)."""

    return int(math.ceil(round(value, 6)))


def lead_time_sum(values: Sequence[float], lead_time_days: int) -> float:
    """Sum of the first ``lead_time_days`` daily values (all of them when shorter)."""

    return float(sum(values[: max(lead_time_days, 0)]))


def suggest_reorder(
    forecast: ForecastPayload,
    inventory: InventorySnapshot,
    lead_time_days: int,
    config: ReorderConfig = DEFAULT_CONFIG,
) -> Optional[ReorderSuggestion]:
    """Return a pending suggestion when available stock is at or below the reorder point.

    The primary quantity is the conservative (P90-based) figure.  The
    aggressive figure is kept in the rationale as an alternative and is not
    clamped, so it can be zero or negative.
    """

    lead_time_demand = lead_time_sum(forecast.median, lead_time_days)
    conservative_demand = lead_time_sum(forecast.p90, lead_time_days)
    safety_stock = ceil_quantity(lead_time_demand * config.safety_stock_rate)

    available_stock = float(inventory.on_hand - inventory.reserved)
    reorder_point = lead_time_demand + safety_stock

    if available_stock > reorder_point:
        return None

    conservative_qty = ceil_quantity(conservative_demand + safety_stock - available_stock)
    aggressive_qty = ceil_quantity(
        lead_time_demand * config.aggressive_multiplier + safety_stock - available_stock
    )

    return ReorderSuggestion(
        store_id=inventory.store_id,
        sku_id=inventory.sku_id,
        suggested_qty=conservative_qty,
        safety_stock=safety_stock,
        lead_time_days=lead_time_days,
        rationale=ReorderRationale(
            lead_time_demand=lead_time_demand,
            available_stock=available_stock,
            reorder_point=reorder_point,
            alternatives=ReorderAlternatives(aggressive=aggressive_qty),
        ),
    )


class ProcurementService:
    """Turn stored forecasts into persisted reorder suggestions."""

    def __init__(
        self,
        store: InventoryStore,
        config_root: str = "configs",
        config: Optional[ReorderConfig] = None,
    ) -> None:
        self.store = store
        self.config_root = config_root
        self._config = config

    # ------------------------------------------------------------------
    @property
    def config(self) -> ReorderConfig:
        return self._config or ReorderConfig.load(self.config_root)

    # ------------------------------------------------------------------
    def _lead_time_for(self, sku_id: str, config: ReorderConfig) -> int:
        sku = self.store.get_sku(sku_id)
        if sku is None or not sku.lead_time_days:
            return config.default_lead_time_days
        return int(sku.lead_time_days)

    # ------------------------------------------------------------------
    def generate_reorder_suggestions(self, store_id: str) -> ReorderRunSummary:
        """Evaluate every inventory row of the store against its current forecast."""

        if self.store.get_store(store_id) is None:
            raise StoreNotFoundError(store_id)

        config = self.config
        rows = self.store.get_inventory_by_store(store_id)
        summary = ReorderRunSummary(store_id=store_id, rows_evaluated=len(rows))

        for row in rows:
            forecast = self.store.get_forecast(store_id, row.sku_id)
            if forecast is None:
                summary.skipped_without_forecast += 1
                continue

            try:
                suggestion = suggest_reorder(forecast, row, self._lead_time_for(row.sku_id, config), config)
                if suggestion is None:
                    continue
                if suggestion.suggested_qty <= 0 and not config.persist_non_positive_reorders:
                    LOGGER.debug(
                        "SKU %s in store %s triggered with non-positive quantity %d; not persisted",
                        row.sku_id,
                        store_id,
                        suggestion.suggested_qty,
                    )
                    continue
                self.store.create_reorder(suggestion)
            except Exception:
                LOGGER.exception("Error generating reorder suggestion for SKU %s in store %s", row.sku_id, store_id)
                SKU_FAILURES.labels("reorder").inc()
                summary.failed_sku_ids.append(row.sku_id)
                continue

            REORDERS_CREATED.inc()
            summary.suggestions_created += 1

        LOGGER.info(
            "Store %s reorder run: %d suggestions from %d inventory rows (%d without forecast)",
            store_id,
            summary.suggestions_created,
            summary.rows_evaluated,
            summary.skipped_without_forecast,
        )
        return summary

    # ------------------------------------------------------------------
    def process_reorder_action(self, reorder_id: str, action: str) -> ReorderSuggestion:
        """Approve or reject a pending suggestion."""

        status = _ACTION_STATUS.get(action)
        if status is None:
            raise ValueError(f"Unsupported reorder action '{action}'; expected approve or reject")
        if self.store.get_reorder(reorder_id) is None:
            raise RecordNotFoundError("Reorder suggestion", reorder_id)
        return self.store.update_reorder_status(reorder_id, status)
