"""Routes for reading a store's current stock positions."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, status

from ...models import schemas
from ...services.registry import get_store

router = APIRouter()

_store = get_store()


@router.get("/inventory/{store_id}", response_model=List[schemas.InventorySnapshot])
def list_inventory(store_id: str) -> List[schemas.InventorySnapshot]:
    if _store.get_store(store_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "store_not_found", "message": f"Store '{store_id}' was not found."},
        )
    return sorted(_store.get_inventory_by_store(store_id), key=lambda row: row.sku_id)
