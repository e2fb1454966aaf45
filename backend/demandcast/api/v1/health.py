r"""backend\demandcast\api\v1\health.py

Health check endpoints.

Orchestrators and load balancers can use `/api/v1/health` to verify that the
service is running and to see whether seed data was loaded into the store.
"""

from typing import Any, Dict

from fastapi import APIRouter

from ...services.registry import get_store

router = APIRouter()


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Return a basic health indicator."""
    return {"status": "ok", "stores": get_store().store_count()}
