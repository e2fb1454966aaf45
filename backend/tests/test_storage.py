from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

import pytest

from backend.demandcast.core.errors import RecordNotFoundError
from backend.demandcast.models.schemas import (
    Anomaly,
    Forecast,
    ForecastMetadata,
    InventorySnapshot,
    ReorderAlternatives,
    ReorderRationale,
    ReorderSuggestion,
    SalesRecord,
)
from backend.demandcast.services.io_utils import append_jsonl, read_jsonl
from backend.demandcast.services.storage import InMemoryStore, load_data_directory

NOW = datetime(2026, 10, 11, tzinfo=timezone.utc)


def _sale(ts: datetime, qty: float = 1.0, store_id: str = "st-1") -> SalesRecord:
    return SalesRecord(store_id=store_id, sku_id="sku-1", timestamp=ts, quantity=qty)


def _suggestion() -> ReorderSuggestion:
    return ReorderSuggestion(
        store_id="st-1",
        sku_id="sku-1",
        suggested_qty=12,
        safety_stock=2,
        lead_time_days=7,
        rationale=ReorderRationale(
            type="conservative",
            lead_time_demand=10.0,
            reorder_point=12.0,
            available_stock=0.0,
            alternatives=ReorderAlternatives(aggressive=17),
        ),
    )


def test_sales_window_is_inclusive_and_sorted() -> None:
    store = InMemoryStore()
    start = NOW - timedelta(days=3)
    store.add_sales(
        [
            _sale(NOW, 3),
            _sale(start - timedelta(seconds=1), 9),
            _sale(start, 1),
            _sale(NOW - timedelta(days=1), 2),
            _sale(NOW + timedelta(seconds=1), 9),
            _sale(NOW, 7, store_id="st-2"),
        ]
    )

    rows = store.get_sales_by_store("st-1", start, NOW)

    assert [r.quantity for r in rows] == [1, 2, 3]


def test_naive_bounds_are_treated_as_utc() -> None:
    store = InMemoryStore()
    store.add_sales([_sale(datetime(2026, 10, 10, 23, 30))])

    assert len(store.get_sales_by_store("st-1", datetime(2026, 10, 10, 23), datetime(2026, 10, 11))) == 1
    assert store.get_sales_by_store("st-1", datetime(2026, 10, 11)) == []


def test_forecast_save_replaces_previous_row() -> None:
    store = InMemoryStore(clock=lambda: NOW)
    forecast = Forecast(
        store_id="st-1",
        sku_id="sku-1",
        horizon_hours=24,
        median=[1.0],
        p10=[0.5],
        p90=[2.0],
        metadata=ForecastMetadata(model="baseline"),
    )

    first = store.save_forecast(forecast)
    second = store.save_forecast(forecast.model_copy(update={"median": [3.0]}))

    assert first.generated_at == NOW
    assert store.get_forecast("st-1", "sku-1").median == [3.0]
    assert store.get_forecasts_by_store("st-1") == [second]


def test_reorder_lifecycle() -> None:
    clock = iter([NOW, NOW + timedelta(minutes=5)])
    store = InMemoryStore(clock=lambda: next(clock))

    created = store.create_reorder(_suggestion())
    assert created.id
    assert created.created_at == created.updated_at == NOW

    approved = store.update_reorder_status(created.id, "approved")
    assert approved.status == "approved"
    assert approved.updated_at == NOW + timedelta(minutes=5)
    assert approved.created_at == NOW
    assert store.get_reorder(created.id) == approved

    with pytest.raises(RecordNotFoundError) as excinfo:
        store.update_reorder_status("missing", "approved")
    assert "missing" in str(excinfo.value)


def test_anomaly_status_sets_and_clears_resolved_at() -> None:
    store = InMemoryStore(clock=lambda: NOW)
    anomaly = store.create_anomaly(
        Anomaly(
            store_id="st-1",
            sku_id="sku-1",
            type="negative_stock",
            severity="high",
            description="Negative stock detected: -1 units",
        )
    )
    assert anomaly.detected_at == NOW

    assert store.update_anomaly_status(anomaly.id, "ignored").resolved_at == NOW
    assert store.update_anomaly_status(anomaly.id, "pending").resolved_at is None

    with pytest.raises(RecordNotFoundError):
        store.update_anomaly_status("missing", "accepted")


def test_listings_are_newest_first() -> None:
    store = InMemoryStore(clock=lambda: NOW)
    first = store.create_reorder(_suggestion())
    second = store.create_reorder(_suggestion())

    assert [r.id for r in store.get_reorders_by_store("st-1")] == [second.id, first.id]
    assert store.get_reorders_by_store("st-2") == []


def test_load_data_directory(tmp_path: Path) -> None:
    (tmp_path / "stores.csv").write_text("id,organization_id,code,name\nst-1,org,S1,Main\n")
    (tmp_path / "skus.csv").write_text(
        "id,organization_id,code,lead_time_days\nsku-1,org,ONE,5\nsku-2,org,TWO,\n"
    )
    (tmp_path / "sales.csv").write_text(
        "store_id,sku_id,timestamp,quantity\n"
        "st-1,sku-1,2026-10-01T10:00:00Z,4\n"
        "st-1,sku-1,2026-10-02T10:00:00Z,6\n"
    )

    store = InMemoryStore()
    loaded = load_data_directory(store, tmp_path)

    assert loaded == {"stores": 1, "skus": 2, "sales": 2, "inventory": 0}
    assert store.get_store("st-1").name == "Main"
    assert store.get_sku("sku-1").lead_time_days == 5
    assert store.get_sku("sku-2").lead_time_days is None
    assert [r.quantity for r in store.get_sales_by_store("st-1")] == [4.0, 6.0]
    assert store.get_inventory_by_store("st-1") == []


def test_seed_data_directory_loads() -> None:
    store = InMemoryStore()
    loaded = load_data_directory(store, ROOT / "data")

    assert loaded["stores"] == 1
    assert loaded["skus"] == 3
    assert loaded["sales"] > 0
    rows = {row.sku_id: row for row in store.get_inventory_by_store("store-001")}
    assert rows["sku-003"].on_hand == -2
    assert rows["sku-003"].last_counted_at is None


def test_jsonl_append_and_tail(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "audit.jsonl"
    for n in range(3):
        append_jsonl(path, {"n": n, "at": NOW})
    with path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n\n")

    events = read_jsonl(path)
    assert [e["n"] for e in events] == [0, 1, 2]
    assert events[0]["at"] == str(NOW)
    assert [e["n"] for e in read_jsonl(path, limit=2)] == [1, 2]
    assert read_jsonl(tmp_path / "missing.jsonl") == []
