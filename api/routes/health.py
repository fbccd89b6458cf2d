"""Probes and metrics.

/health reports per-component status, /ready fails with 503 until the work
order store answers, /live only proves the process is serving.
"""

import sqlite3
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from core import __version__
from core.models.canonical import utc_now
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from api.routes.work_orders import get_service
from reconciliation.service import WorkOrderService

logger = get_logger(__name__)

router = APIRouter()


class ComponentStatus(BaseModel):
    api: str = "up"
    storage: str
    work_orders: Optional[int] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    services: ComponentStatus


def probe_storage(service: WorkOrderService) -> ComponentStatus:
    try:
        count = service.store.count_work_orders()
    except sqlite3.Error as e:
        logger.warning("Work order store unreachable", extra_fields={"error": str(e)})
        return ComponentStatus(storage="down")
    return ComponentStatus(storage="up", work_orders=count)


@router.get("/health", response_model=HealthResponse)
def health_check(service: WorkOrderService = Depends(get_service)) -> HealthResponse:
    components = probe_storage(service)
    return HealthResponse(
        status="healthy" if components.storage == "up" else "degraded",
        timestamp=utc_now().isoformat(),
        version=__version__,
        services=components,
    )


@router.get("/ready")
def readiness_check(response: Response, service: WorkOrderService = Depends(get_service)) -> Dict[str, str]:
    if probe_storage(service).storage != "up":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/metrics")
async def metrics_summary() -> Dict[str, Any]:
    """Operation outcomes, report statuses, activity counters and timings."""
    return get_metrics().get_summary()
