r"""backend\demandcast\services\storage.py

Persistence collaborator for the engines.

``InventoryStore`` spells out the read/write contract the forecast, reorder
and anomaly services depend on.  ``InMemoryStore`` is a thread-safe
implementation backed by dictionaries; ``load_data_directory`` seeds it from
the tables found in a data directory (Parquet preferred, CSV fallback).
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from ..core.errors import RecordNotFoundError
from ..models.schemas import (
    Anomaly,
    AnomalyStatus,
    Forecast,
    InventorySnapshot,
    ReorderStatus,
    ReorderSuggestion,
    SalesRecord,
    Sku,
    Store,
)
from .io_utils import frame_records, prefer_parquet, table_exists

LOGGER = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InventoryStore(Protocol):
    """Read/write contract consumed by the engines."""

    def get_store(self, store_id: str) -> Optional[Store]: ...

    def get_sku(self, sku_id: str) -> Optional[Sku]: ...

    def get_skus_by_organization(self, organization_id: str) -> List[Sku]: ...

    def get_sales_by_store(
        self,
        store_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SalesRecord]: ...

    def get_inventory_by_store(self, store_id: str) -> List[InventorySnapshot]: ...

    def save_forecast(self, forecast: Forecast) -> Forecast: ...

    def get_forecast(self, store_id: str, sku_id: str) -> Optional[Forecast]: ...

    def get_forecasts_by_store(self, store_id: str) -> List[Forecast]: ...

    def create_reorder(self, suggestion: ReorderSuggestion) -> ReorderSuggestion: ...

    def get_reorder(self, reorder_id: str) -> Optional[ReorderSuggestion]: ...

    def get_reorders_by_store(self, store_id: str) -> List[ReorderSuggestion]: ...

    def update_reorder_status(self, reorder_id: str, status: ReorderStatus) -> ReorderSuggestion: ...

    def create_anomaly(self, anomaly: Anomaly) -> Anomaly: ...

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]: ...

    def get_anomalies_by_store(self, store_id: str) -> List[Anomaly]: ...

    def update_anomaly_status(self, anomaly_id: str, status: AnomalyStatus) -> Anomaly: ...


class InMemoryStore:
    """Dictionary-backed ``InventoryStore``.

    Forecasts are kept one per (store, SKU): saving a new forecast replaces
    the previous one wholesale.  Inventory rows are likewise keyed by
    (store, SKU) and overwritten on upsert.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._stores: Dict[str, Store] = {}
        self._skus: Dict[str, Sku] = {}
        self._sales: Dict[str, List[SalesRecord]] = defaultdict(list)
        self._inventory: Dict[Tuple[str, str], InventorySnapshot] = {}
        self._forecasts: Dict[Tuple[str, str], Forecast] = {}
        self._reorders: Dict[str, ReorderSuggestion] = {}
        self._anomalies: Dict[str, Anomaly] = {}

    # ------------------------------------------------------------------
    # Master data and inputs

    def add_store(self, store: Store) -> Store:
        with self._lock:
            self._stores[store.id] = store
        return store

    def add_sku(self, sku: Sku) -> Sku:
        with self._lock:
            self._skus[sku.id] = sku
        return sku

    def add_sales(self, records: Iterable[SalesRecord]) -> int:
        count = 0
        with self._lock:
            for record in records:
                self._sales[record.store_id].append(record)
                count += 1
        return count

    def upsert_inventory(self, snapshot: InventorySnapshot) -> InventorySnapshot:
        with self._lock:
            self._inventory[(snapshot.store_id, snapshot.sku_id)] = snapshot
        return snapshot

    def get_store(self, store_id: str) -> Optional[Store]:
        return self._stores.get(store_id)

    def store_count(self) -> int:
        return len(self._stores)

    def get_sku(self, sku_id: str) -> Optional[Sku]:
        return self._skus.get(sku_id)

    def get_skus_by_organization(self, organization_id: str) -> List[Sku]:
        with self._lock:
            return [sku for sku in self._skus.values() if sku.organization_id == organization_id]

    def get_sales_by_store(
        self,
        store_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SalesRecord]:
        lower = as_utc(start) if start is not None else None
        upper = as_utc(end) if end is not None else None
        with self._lock:
            records = list(self._sales.get(store_id, []))

        selected = []
        for record in records:
            ts = as_utc(record.timestamp)
            if lower is not None and ts < lower:
                continue
            if upper is not None and ts > upper:
                continue
            selected.append(record)
        selected.sort(key=lambda rec: as_utc(rec.timestamp))
        return selected

    def get_inventory_by_store(self, store_id: str) -> List[InventorySnapshot]:
        with self._lock:
            return [row for (sid, _), row in self._inventory.items() if sid == store_id]

    # ------------------------------------------------------------------
    # Forecasts

    def save_forecast(self, forecast: Forecast) -> Forecast:
        stored = forecast.model_copy(
            update={"id": forecast.id or str(uuid.uuid4()), "generated_at": self._clock()}
        )
        with self._lock:
            self._forecasts[(stored.store_id, stored.sku_id)] = stored
        return stored

    def get_forecast(self, store_id: str, sku_id: str) -> Optional[Forecast]:
        return self._forecasts.get((store_id, sku_id))

    def get_forecasts_by_store(self, store_id: str) -> List[Forecast]:
        with self._lock:
            rows = [fc for (sid, _), fc in self._forecasts.items() if sid == store_id]
        return sorted(rows, key=lambda fc: fc.generated_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)

    # ------------------------------------------------------------------
    # Reorder suggestions

    def create_reorder(self, suggestion: ReorderSuggestion) -> ReorderSuggestion:
        now = self._clock()
        stored = suggestion.model_copy(
            update={"id": str(uuid.uuid4()), "created_at": now, "updated_at": now}
        )
        with self._lock:
            self._reorders[stored.id] = stored
        return stored

    def get_reorder(self, reorder_id: str) -> Optional[ReorderSuggestion]:
        return self._reorders.get(reorder_id)

    def get_reorders_by_store(self, store_id: str) -> List[ReorderSuggestion]:
        with self._lock:
            rows = [rec for rec in self._reorders.values() if rec.store_id == store_id]
        return list(reversed(rows))

    def update_reorder_status(self, reorder_id: str, status: ReorderStatus) -> ReorderSuggestion:
        with self._lock:
            current = self._reorders.get(reorder_id)
            if current is None:
                raise RecordNotFoundError("Reorder suggestion", reorder_id)
            updated = current.model_copy(update={"status": status, "updated_at": self._clock()})
            self._reorders[reorder_id] = updated
        return updated

    # ------------------------------------------------------------------
    # Anomalies

    def create_anomaly(self, anomaly: Anomaly) -> Anomaly:
        stored = anomaly.model_copy(
            update={
                "id": str(uuid.uuid4()),
                "detected_at": anomaly.detected_at or self._clock(),
            }
        )
        with self._lock:
            self._anomalies[stored.id] = stored
        return stored

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        return self._anomalies.get(anomaly_id)

    def get_anomalies_by_store(self, store_id: str) -> List[Anomaly]:
        with self._lock:
            rows = [row for row in self._anomalies.values() if row.store_id == store_id]
        return list(reversed(rows))

    def update_anomaly_status(self, anomaly_id: str, status: AnomalyStatus) -> Anomaly:
        with self._lock:
            current = self._anomalies.get(anomaly_id)
            if current is None:
                raise RecordNotFoundError("Anomaly", anomaly_id)
            resolved_at = None if status == "pending" else self._clock()
            updated = current.model_copy(update={"status": status, "resolved_at": resolved_at})
            self._anomalies[anomaly_id] = updated
        return updated


# ---------------------------------------------------------------------------
# Seeding from a data directory

STORES_TABLE = "stores.csv"
SKUS_TABLE = "skus.csv"
SALES_TABLE = "sales.csv"
INVENTORY_TABLE = "inventory.csv"


def load_data_directory(store: InMemoryStore, data_root: str | Path) -> Dict[str, int]:
    """Populate ``store`` from the tables present under ``data_root``.

    Missing tables are skipped.  Returns the number of rows loaded per table.
    """

    root = Path(data_root)
    loaded: Dict[str, int] = {}

    def _rows(table: str) -> List[dict]:
        path = root / table
        if not table_exists(path):
            LOGGER.debug("Table %s not found under %s; skipping.", table, root)
            return []
        return frame_records(prefer_parquet(path))

    stores = [store.add_store(Store.model_validate(row)) for row in _rows(STORES_TABLE)]
    loaded["stores"] = len(stores)

    skus = [store.add_sku(Sku.model_validate(row)) for row in _rows(SKUS_TABLE)]
    loaded["skus"] = len(skus)

    sales_rows = _rows(SALES_TABLE)
    loaded["sales"] = store.add_sales(SalesRecord.model_validate(row) for row in sales_rows)

    inventory = [store.upsert_inventory(InventorySnapshot.model_validate(row)) for row in _rows(INVENTORY_TABLE)]
    loaded["inventory"] = len(inventory)

    LOGGER.info(
        "Loaded data directory %s: stores=%d skus=%d sales=%d inventory=%d",
        root,
        loaded["stores"],
        loaded["skus"],
        loaded["sales"],
        loaded["inventory"],
    )
    return loaded
