r"""backend\demandcast\api\v1\reorders.py

Routes for reading reorder suggestions."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from ...models import schemas
from ...services.registry import get_store

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_store = get_store()


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


@router.get("/reorders/{store_id}", response_model=List[schemas.ReorderSuggestion])
def list_reorders(
    store_id: str,
    status_filter: schemas.ReorderStatus | None = Query(None, alias="status"),
) -> List[schemas.ReorderSuggestion]:
    """Return the store's reorder suggestions, newest first."""

    if _store.get_store(store_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("store_not_found", f"Store '{store_id}' was not found."),
        )
    suggestions = _store.get_reorders_by_store(store_id)
    if status_filter is not None:
        suggestions = [item for item in suggestions if item.status == status_filter]
    return suggestions
