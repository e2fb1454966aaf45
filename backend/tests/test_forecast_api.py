r"""backend/tests/test_forecast_api.py"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.demandcast.main import app
from backend.demandcast.models.schemas import InventorySnapshot, SalesRecord, Sku, Store
from backend.demandcast.services.forecasting_service import ForecastConfig, ForecastingService
from backend.demandcast.services.procurement_service import ProcurementService, ReorderConfig
from backend.demandcast.services.storage import InMemoryStore

client = TestClient(app)


@pytest.fixture
def store(monkeypatch) -> InMemoryStore:
    """Swap the routers' store and services for ones backed by a fresh store."""

    now = datetime.now(timezone.utc)
    store = InMemoryStore()
    store.add_store(Store(id="st-1", organization_id="org", code="S1", name="Main"))
    store.add_sku(Sku(id="sku-1", organization_id="org", code="ONE", lead_time_days=5))
    store.add_sku(Sku(id="sku-2", organization_id="org", code="TWO", lead_time_days=5))
    # one sale on each of the last 31 dates, all inside the run's 30-day window
    timestamps = [now] + [now - timedelta(days=d) + timedelta(minutes=1) for d in range(1, 31)]
    store.add_sales(
        SalesRecord(store_id="st-1", sku_id=sku_id, timestamp=ts, quantity=10)
        for ts in timestamps
        for sku_id in ("sku-1", "sku-2")
    )
    store.upsert_inventory(InventorySnapshot(store_id="st-1", sku_id="sku-1", on_hand=20))
    store.upsert_inventory(InventorySnapshot(store_id="st-1", sku_id="sku-2", on_hand=500))

    module = "backend.demandcast.api.v1.forecasts"
    monkeypatch.setattr(f"{module}._store", store)
    monkeypatch.setattr(f"{module}._forecast_service", ForecastingService(store, config=ForecastConfig()))
    monkeypatch.setattr(f"{module}._procurement_service", ProcurementService(store, config=ReorderConfig()))
    monkeypatch.setattr("backend.demandcast.api.v1.reorders._store", store)
    return store


def test_run_forecasts_then_read_them(store: InMemoryStore) -> None:
    response = client.post("/api/v1/forecasts/run/st-1")

    assert response.status_code == 200
    payload = response.json()
    assert payload["forecasts"]["forecasts_created"] == 2
    assert payload["forecasts"]["failed_sku_ids"] == []
    assert payload["reorders"]["suggestions_created"] == 1

    response = client.get("/api/v1/forecasts/st-1")
    assert response.status_code == 200
    assert {row["sku_id"] for row in response.json()} == {"sku-1", "sku-2"}

    response = client.get("/api/v1/forecasts/st-1/sku-1")
    assert response.status_code == 200
    forecast = response.json()
    assert forecast["horizon_hours"] == 168
    assert len(forecast["median"]) == len(forecast["p10"]) == len(forecast["p90"]) == 7
    assert forecast["metadata"]["model"] == "weekly_seasonal"
    assert forecast["median"] == pytest.approx([10.0] * 7)


def test_run_creates_reorders_listed_per_store(store: InMemoryStore) -> None:
    client.post("/api/v1/forecasts/run/st-1")

    response = client.get("/api/v1/reorders/st-1")
    assert response.status_code == 200
    [suggestion] = response.json()
    assert suggestion["sku_id"] == "sku-1"
    assert suggestion["status"] == "pending"
    # lead 5: LTD 50, safety 10, conservative ceil(50 + 10 - 20)
    assert suggestion["suggested_qty"] == 40
    assert suggestion["rationale"]["reorder_point"] == pytest.approx(60.0)

    assert client.get("/api/v1/reorders/st-1", params={"status": "approved"}).json() == []
    assert client.get("/api/v1/reorders/st-1", params={"status": "bogus"}).status_code == 422


def test_unknown_store_returns_404(store: InMemoryStore) -> None:
    response = client.post("/api/v1/forecasts/run/nope")
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "store_not_found"

    assert client.get("/api/v1/forecasts/nope").status_code == 404
    assert client.get("/api/v1/reorders/nope").status_code == 404


def test_missing_forecast_returns_404(store: InMemoryStore) -> None:
    response = client.get("/api/v1/forecasts/st-1/sku-1")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "forecast_not_found"


def test_engine_failure_returns_500(store: InMemoryStore, monkeypatch) -> None:
    def _boom(store_id: str, now=None):
        raise RuntimeError("boom")

    monkeypatch.setattr("backend.demandcast.api.v1.forecasts._forecast_service.run_store_forecasts", _boom)

    response = client.post("/api/v1/forecasts/run/st-1")

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "forecast_run_failed"
