r"""backend\demandcast\core\observability.py

Logging setup, request metrics middleware and the Prometheus collectors used
by the batch engines.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

LOGGER = logging.getLogger(__name__)
ACCESS_LOGGER = logging.getLogger("demandcast.access")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the root logger once and set its level."""

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


# ---------------------------------------------------------------------------
# HTTP metrics

_REQUEST_COUNTER = Counter(
    "demandcast_http_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
_LATENCY_HISTOGRAM = Histogram(
    "demandcast_http_request_latency_seconds", "Request latency", ["method", "path"]
)

# ---------------------------------------------------------------------------
# Batch metrics

FORECASTS_GENERATED = Counter(
    "demandcast_forecasts_generated_total", "Forecasts persisted", ["model"]
)
SKU_FAILURES = Counter(
    "demandcast_sku_failures_total", "Per-SKU failures skipped during a batch run", ["stage"]
)
REORDERS_CREATED = Counter(
    "demandcast_reorder_suggestions_total", "Reorder suggestions persisted"
)
ANOMALIES_DETECTED = Counter(
    "demandcast_anomalies_detected_total", "Anomalies detected", ["type", "severity"]
)


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Middleware recording a JSON access log line and Prometheus metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("request-id")
            or str(uuid.uuid4())
        )

        start_perf = time.perf_counter()
        start_wall = time.time()

        def _finalize(response: Response) -> Response:
            latency = time.perf_counter() - start_perf
            status_code = getattr(response, "status_code", 500)
            path_params = request.scope.get("path_params") or {}

            _REQUEST_COUNTER.labels(method, path, str(status_code)).inc()
            _LATENCY_HISTOGRAM.labels(method, path).observe(latency)

            log_payload = {
                "timestamp": datetime.fromtimestamp(start_wall, tz=timezone.utc).isoformat(),
                "path": path,
                "method": method,
                "status": status_code,
                "latency_ms": int(latency * 1000),
                "request_id": request_id,
                "client_ip": client_ip,
                "store_id": path_params.get("store_id"),
                "sku_id": path_params.get("sku_id"),
            }
            ACCESS_LOGGER.info(json.dumps(log_payload))
            response.headers["x-request-id"] = request_id
            return response

        try:
            response = await call_next(request)
        except Exception:
            # Still record the failed request before re-raising.
            _finalize(PlainTextResponse("Internal Server Error", status_code=500))
            raise

        return _finalize(response)


def metrics_endpoint() -> Response:
    """Return Prometheus metrics payload."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
