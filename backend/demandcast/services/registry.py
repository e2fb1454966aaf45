r"""backend\demandcast\services\registry.py

Process-wide store and service instances shared by the API routers."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from ..core.config import get_settings
from .anomaly_service import AnomalyDetectionService
from .dashboard_service import DashboardService
from .forecasting_service import ForecastingService
from .procurement_service import ProcurementService
from .storage import InMemoryStore, load_data_directory

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_store() -> InMemoryStore:
    """Return the shared store, seeded from ``data_dir`` when it exists."""

    store = InMemoryStore()
    data_dir = Path(get_settings().data_dir)
    if data_dir.is_dir():
        load_data_directory(store, data_dir)
    else:
        LOGGER.warning("Data directory %s not found; starting with an empty store", data_dir)
    return store


@lru_cache(maxsize=None)
def get_forecasting_service() -> ForecastingService:
    return ForecastingService(get_store(), config_root=get_settings().config_dir)


@lru_cache(maxsize=None)
def get_procurement_service() -> ProcurementService:
    return ProcurementService(get_store(), config_root=get_settings().config_dir)


@lru_cache(maxsize=None)
def get_anomaly_service() -> AnomalyDetectionService:
    return AnomalyDetectionService(get_store(), config_root=get_settings().config_dir)


@lru_cache(maxsize=None)
def get_dashboard_service() -> DashboardService:
    return DashboardService(get_store())
