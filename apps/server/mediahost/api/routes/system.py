"""System information and remote shutdown/restart."""
import platform

import structlog
from fastapi import APIRouter, Request, status

from ... import __version__
from ...lifecycle.health_registry import get_health_registry

router = APIRouter(prefix="/api/v1/system", tags=["System"])
logger = structlog.get_logger(__name__)


@router.get("/info", summary="Server information")
async def system_info(request: Request):
    host = request.app.state.host
    settings = request.app.state.config.settings
    health_registry = get_health_registry()
    return {
        "version": __version__,
        "run": health_registry.run_number,
        "lifecycle_state": health_registry.lifecycle_state,
        "published_server_url": settings.published_server_url,
        "host_web_client": settings.host_web_client,
        "operating_system": platform.system(),
        "python_version": platform.python_version(),
        "restart_pending": host.should_restart,
        "startup_tasks": host.task_results,
    }


@router.post("/restart", status_code=status.HTTP_202_ACCEPTED, summary="Restart the server")
async def restart(request: Request):
    """Stop serving and start a fresh run with a recomposed configuration."""
    logger.info("restart_requested_via_api", client=request.client.host if request.client else None)
    request.app.state.host.request_restart()
    return {"status": "restarting"}


@router.post("/shutdown", status_code=status.HTTP_202_ACCEPTED, summary="Shut the server down")
async def shutdown(request: Request):
    logger.info("shutdown_requested_via_api", client=request.client.host if request.client else None)
    request.app.state.host.request_shutdown()
    return {"status": "shutting_down"}
