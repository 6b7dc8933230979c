"""Health check endpoints for monitoring and observability."""
from typing import Any, Dict

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ...lifecycle.health_registry import HealthStatus, get_health_registry
from ...lifecycle.state import LifecycleState

router = APIRouter(prefix="/api/v1/health", tags=["Health"])
logger = structlog.get_logger(__name__)


@router.get("", response_model=Dict[str, Any], summary="System health check")
@router.get("/", include_in_schema=False)
async def health_check():
    """
    Overall server health.

    Returns:
    - overall_status: healthy/degraded/unhealthy/unknown
    - lifecycle_state: state the lifecycle controller is in
    - run: run number (increments on every restart)
    - components: status of storage, web host and startup tasks
    - summary: component count by status

    Status Codes:
    - 200: No component is degraded or unhealthy
    - 503: One or more components degraded or unhealthy
    """
    health_summary = get_health_registry().get_health_summary()

    status_code = status.HTTP_200_OK
    if health_summary["overall_status"] in ("degraded", "unhealthy"):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(status_code=status_code, content=health_summary)


@router.get("/live", summary="Liveness probe")
async def liveness():
    """Process is up. Component health is not checked."""
    return {"status": "alive", "probe": "liveness"}


@router.get("/ready", summary="Readiness probe")
async def readiness():
    """
    Ready once the server is serving and every component is healthy.

    Returns:
    - 200: Serving traffic
    - 503: Starting, shutting down or unhealthy
    """
    health_registry = get_health_registry()
    overall_status = health_registry.get_overall_status()
    serving = health_registry.lifecycle_state == LifecycleState.SERVING.value

    if serving and overall_status == HealthStatus.HEALTHY:
        return {"status": "ready", "probe": "readiness"}

    reason = overall_status.value if serving else health_registry.lifecycle_state
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "probe": "readiness", "reason": reason},
    )


@router.get("/startup", summary="Startup probe")
async def startup():
    """200 once the startup tasks have finished and the server reached serving."""
    state = get_health_registry().lifecycle_state
    if state == LifecycleState.SERVING.value:
        return {"status": "started", "probe": "startup"}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "starting", "probe": "startup", "lifecycle_state": state},
    )


@router.get("/components/{component_name}", summary="Component-specific health")
async def component_health(component_name: str):
    """
    Health for one component (e.g. "storage", "web_host", "startup_tasks").

    Returns 404 if the component is not registered in this run.
    """
    component = get_health_registry().get_component_health(component_name)
    if not component:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Component not found", "component": component_name},
        )
    return component.to_dict()
