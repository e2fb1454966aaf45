r"""backend\demandcast\api\v1\anomalies.py

Routes for running anomaly detection and reviewing its findings."""

from __future__ import annotations

import logging
from typing import List, Literal

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from ...core.errors import RecordNotFoundError, StoreNotFoundError
from ...models import schemas
from ...services.registry import get_anomaly_service, get_store

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_store = get_store()
_anomaly_service = get_anomaly_service()


class AnomalyActionRequest(BaseModel):
    action: Literal["accept", "ignore"]


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


@router.post("/anomalies/detect/{store_id}", response_model=schemas.AnomalyDetectionResult)
def detect_anomalies(store_id: str) -> schemas.AnomalyDetectionResult:
    """Scan the store, persist what was found and return it with a severity summary."""

    try:
        return _anomaly_service.detect_and_record(store_id)
    except StoreNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("store_not_found", str(exc)),
        ) from exc
    except Exception as exc:
        LOGGER.exception("Anomaly detection failed for store_id=%s", store_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("anomaly_detection_failed", "Anomaly detection failed."),
        ) from exc


@router.get("/anomalies/{store_id}", response_model=List[schemas.Anomaly])
def list_anomalies(
    store_id: str,
    status_filter: schemas.AnomalyStatus | None = Query(None, alias="status"),
) -> List[schemas.Anomaly]:
    if _store.get_store(store_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("store_not_found", f"Store '{store_id}' was not found."),
        )
    anomalies = _store.get_anomalies_by_store(store_id)
    if status_filter is not None:
        anomalies = [item for item in anomalies if item.status == status_filter]
    return anomalies


@router.patch("/anomalies/{anomaly_id}/action", response_model=schemas.Anomaly)
def anomaly_action(anomaly_id: str, body: AnomalyActionRequest) -> schemas.Anomaly:
    """Accept or ignore a pending anomaly."""

    try:
        return _anomaly_service.process_anomaly_action(anomaly_id, body.action)
    except RecordNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("anomaly_not_found", str(exc)),
        ) from exc
