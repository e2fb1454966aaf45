"""Routes for triggering and reading demand forecasts."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, status

from ...core.errors import StoreNotFoundError
from ...models import schemas
from ...services.registry import get_forecasting_service, get_procurement_service, get_store

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_store = get_store()
_forecast_service = get_forecasting_service()
_procurement_service = get_procurement_service()


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


def _validate_store(store_id: str) -> None:
    """Ensure that the store exists before reading or running forecasts."""

    if _store.get_store(store_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("store_not_found", f"Store '{store_id}' was not found."),
        )


@router.post("/forecasts/run/{store_id}")
def run_forecasts(store_id: str) -> Dict[str, Any]:
    """Forecast every active SKU of the store, then refresh its reorder suggestions."""

    LOGGER.info("Forecast run requested for store_id=%s", store_id)
    try:
        forecast_summary = _forecast_service.run_store_forecasts(store_id)
        reorder_summary = _procurement_service.generate_reorder_suggestions(store_id)
    except StoreNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("store_not_found", str(exc)),
        ) from exc
    except Exception as exc:
        LOGGER.exception("Forecast run failed for store_id=%s", store_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("forecast_run_failed", "Forecast run failed."),
        ) from exc

    return {
        "forecasts": forecast_summary.model_dump(),
        "reorders": reorder_summary.model_dump(),
    }


@router.get("/forecasts/{store_id}", response_model=List[schemas.Forecast])
def list_forecasts(store_id: str) -> List[schemas.Forecast]:
    _validate_store(store_id)
    return _store.get_forecasts_by_store(store_id)


@router.get("/forecasts/{store_id}/{sku_id}", response_model=schemas.Forecast)
def get_forecast(store_id: str, sku_id: str) -> schemas.Forecast:
    """Return the current forecast for one SKU of a store."""

    _validate_store(store_id)
    forecast = _store.get_forecast(store_id, sku_id)
    if forecast is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload(
                "forecast_not_found",
                f"No forecast for SKU '{sku_id}' in store '{store_id}'.",
            ),
        )
    return forecast
