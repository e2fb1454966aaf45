r"""backend\demandcast\models\schemas.py

Pydantic models used throughout the engines and the API.

These models describe the inputs handed to the forecasting, reorder and
anomaly engines (sales, inventory and master data) as well as the records
they produce.  Rationale and metadata payloads are explicit typed records
rather than free-form dictionaries so that stored rows always share one
shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AnomalyType = Literal[
    "demand_spike",
    "demand_drop",
    "pattern_change",
    "negative_stock",
    "stale_inventory",
    "excessive_reserved",
]
Severity = Literal["low", "medium", "high"]
AnomalyStatus = Literal["pending", "accepted", "ignored"]
ReorderStatus = Literal["pending", "approved", "rejected"]


# ---------------------------------------------------------------------------
# Master data and inputs


class Store(BaseModel):
    """A physical or virtual store belonging to an organization."""

    id: str
    organization_id: str
    code: str
    name: str
    timezone: str = "UTC"
    is_active: bool = True


class Sku(BaseModel):
    """SKU master data."""

    id: str
    organization_id: str
    code: str
    name: str = ""
    category: Optional[str] = None
    lead_time_days: Optional[int] = Field(None, description="Supplier lead time in days")
    price: Optional[float] = None
    is_active: bool = True


class SalesRecord(BaseModel):
    """A single point-of-sale line."""

    model_config = ConfigDict(frozen=True)

    store_id: str
    sku_id: str
    timestamp: datetime
    quantity: float = Field(..., ge=0, description="Units sold")
    price: Optional[float] = None
    promo_flag: bool = False
    order_id: Optional[str] = None


class InventorySnapshot(BaseModel):
    """Current stock position for one (store, SKU) pair."""

    store_id: str
    sku_id: str
    on_hand: int = Field(0, description="Units on hand; negative values are a data-quality signal")
    reserved: int = Field(0, description="Units already promised to open orders")
    last_counted_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Forecasts


class ForecastMetadata(BaseModel):
    """Provenance of a forecast."""

    model: str = Field(..., description="Estimator that produced the forecast")
    accuracy: Optional[float] = Field(None, ge=0, le=100, description="Backtested accuracy, percent")
    notes: Optional[str] = None


class ForecastPayload(BaseModel):
    """Per-day forecast bands as returned by the forecast engine."""

    median: List[float]
    p10: List[float]
    p90: List[float]
    metadata: ForecastMetadata


class Forecast(ForecastPayload):
    """A persisted forecast for a (store, SKU) pair."""

    id: Optional[str] = None
    store_id: str
    sku_id: str
    horizon_hours: int
    generated_at: Optional[datetime] = None


class ForecastRunSummary(BaseModel):
    """Outcome of a forecast batch over one store."""

    store_id: str
    skus_total: int = 0
    forecasts_created: int = 0
    failed_sku_ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Reorder suggestions


class ReorderAlternatives(BaseModel):
    aggressive: int = Field(..., description="Quantity under the 1.5x lead-time demand model; may be <= 0")


class ReorderRationale(BaseModel):
    """Audit trail behind a reorder suggestion."""

    type: Literal["conservative"] = "conservative"
    lead_time_demand: float
    available_stock: float
    reorder_point: float
    alternatives: ReorderAlternatives


class ReorderSuggestion(BaseModel):
    """Recommendation to replenish a SKU."""

    id: Optional[str] = None
    store_id: str
    sku_id: str
    suggested_qty: int = Field(..., description="Conservative (P90-based) order quantity")
    safety_stock: int
    lead_time_days: int
    rationale: ReorderRationale
    status: ReorderStatus = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReorderRunSummary(BaseModel):
    """Outcome of a reorder batch over one store."""

    store_id: str
    rows_evaluated: int = 0
    suggestions_created: int = 0
    skipped_without_forecast: int = 0
    failed_sku_ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Anomalies


class Anomaly(BaseModel):
    """A statistically unusual observation awaiting human review."""

    id: Optional[str] = None
    store_id: str
    sku_id: str
    type: AnomalyType
    severity: Severity
    description: str
    status: AnomalyStatus = "pending"
    detected_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class AnomalySummary(BaseModel):
    total: int = 0
    high_severity: int = 0
    medium_severity: int = 0
    low_severity: int = 0

    @classmethod
    def from_anomalies(cls, anomalies: Iterable[Anomaly]) -> "AnomalySummary":
        counts = {"high": 0, "medium": 0, "low": 0}
        total = 0
        for anomaly in anomalies:
            counts[anomaly.severity] += 1
            total += 1
        return cls(
            total=total,
            high_severity=counts["high"],
            medium_severity=counts["medium"],
            low_severity=counts["low"],
        )


class AnomalyDetectionResult(BaseModel):
    anomalies: List[Anomaly]
    summary: AnomalySummary


# ---------------------------------------------------------------------------
# Dashboard

RiskLevel = Literal["high", "medium", "low"]


class DashboardMetrics(BaseModel):
    """Headline counts for one store."""

    store_id: str
    active_alerts: int = Field(0, description="Pending anomalies")
    reorder_suggestions: int = Field(0, description="Pending reorder suggestions")
    forecast_accuracy: Optional[float] = Field(None, description="Mean backtested accuracy of current forecasts, percent")
    stock_coverage_days: Optional[float] = Field(None, description="Units on hand over forecast daily demand")


class RiskSku(BaseModel):
    """A SKU ranked by how close it is to running out."""

    sku: Sku
    inventory: InventorySnapshot
    risk_level: RiskLevel
    stock_days: Optional[float] = Field(None, description="Days of cover at forecast demand; unknown without a forecast")
