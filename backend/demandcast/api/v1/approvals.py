r"""backend\demandcast\api\v1\approvals.py

Endpoints for approving or rejecting reorder suggestions.

Every decision is applied to the stored suggestion and appended to a JSON
Lines audit log under the data directory."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from ...core.config import get_settings
from ...core.errors import RecordNotFoundError
from ...services.io_utils import append_jsonl, read_jsonl
from ...services.registry import get_procurement_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()

DATA_DIR = get_settings().data_dir
LOG_PATH = os.path.join(DATA_DIR, "approvals_audit_log.jsonl")

_procurement_service = get_procurement_service()


class ApprovalRequest(BaseModel):
    reorder_id: str = Field(..., min_length=1)
    action: Literal["approve", "reject"]
    reason: str | None = Field(None, min_length=1)

    @field_validator("action", mode="before")
    @classmethod
    def _normalise_action(cls, value: str) -> str:
        return (value or "").lower()


@router.post("/approvals")
def create_approval(request: ApprovalRequest) -> Dict[str, Any]:
    """Apply an approval decision and append it to the audit log."""

    try:
        suggestion = _procurement_service.process_reorder_action(request.reorder_id, request.action)
    except RecordNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "reorder_not_found", "message": str(exc)},
        ) from exc

    event: Dict[str, Any] = {
        "reorder_id": suggestion.id,
        "store_id": suggestion.store_id,
        "sku_id": suggestion.sku_id,
        "action": request.action,
        "qty": suggestion.suggested_qty,
        "recorded_at": datetime.now(timezone.utc).isoformat(),
    }
    if request.reason is not None:
        event["reason"] = request.reason
    append_jsonl(LOG_PATH, event)
    LOGGER.info("Reorder %s %s", suggestion.id, suggestion.status)
    return {"status": "ok", "event": event, "reorder": suggestion.model_dump(mode="json")}


@router.get("/approvals/audit-log")
def get_audit_log(limit: int = 50) -> Dict[str, List[Dict[str, Any]]]:
    """Return the most recent approval audit log entries."""

    if limit < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_limit", "message": "limit must be non-negative."},
        )
    return {"events": read_jsonl(LOG_PATH, limit)}
