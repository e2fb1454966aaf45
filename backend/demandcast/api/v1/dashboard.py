r"""backend\demandcast\api\v1\dashboard.py

Read-only store roll-ups: pending work counts and the SKUs most at risk of
running out."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from ...core.errors import StoreNotFoundError
from ...models import schemas
from ...services.registry import get_dashboard_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_dashboard_service = get_dashboard_service()


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


def _store_not_found(exc: StoreNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=_error_payload("store_not_found", str(exc)),
    )


@router.get("/dashboard/metrics/{store_id}", response_model=schemas.DashboardMetrics)
def dashboard_metrics(store_id: str) -> schemas.DashboardMetrics:
    try:
        return _dashboard_service.metrics(store_id)
    except StoreNotFoundError as exc:
        raise _store_not_found(exc) from exc


@router.get("/dashboard/top-risk-skus/{store_id}", response_model=List[schemas.RiskSku])
def top_risk_skus(
    store_id: str,
    limit: int = Query(10, ge=1, le=100),
) -> List[schemas.RiskSku]:
    """Return the store's lowest-stock SKUs, most at risk first."""

    try:
        return _dashboard_service.top_risk_skus(store_id, limit)
    except StoreNotFoundError as exc:
        raise _store_not_found(exc) from exc
