r"""backend\demandcast\main.py

Main entrypoint for the FastAPI application.

The API triggers per-store forecast, reorder and anomaly runs, exposes their
results for review, and lets operators approve reorders and accept or ignore
anomalies.  A health endpoint is also provided for readiness/liveness checks.
Configuration is read from environment variables and YAML files in
`configs/`.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

# Load .env from repo root before settings are read
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(BASE_DIR / ".env")

from .api.v1 import (  # noqa: E402
    anomalies,
    approvals,
    configs,
    dashboard,
    forecasts,
    health,
    inventory,
    reorders,
)
from .core.config import get_settings  # noqa: E402
from .core.observability import RequestMetricsMiddleware, configure_logging, metrics_endpoint  # noqa: E402

settings = get_settings()
configure_logging(settings.log_level)

logging.getLogger(__name__).info(
    "Starting Demandcast API config_dir=%s data_dir=%s",
    settings.config_dir,
    settings.data_dir,
)

app = FastAPI(title="Demandcast API", version="0.1.0")

# Allow cross-origin requests from the dashboard (and others).
origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestMetricsMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(forecasts.router, prefix="/api/v1")
app.include_router(reorders.router, prefix="/api/v1")
app.include_router(approvals.router, prefix="/api/v1")
app.include_router(anomalies.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(configs.router, prefix="/api/v1")
app.include_router(dashboard.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()
