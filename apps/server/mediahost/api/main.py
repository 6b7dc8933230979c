"""
apps/server/mediahost/api/main.py
FastAPI application for one lifecycle run.

Architecture:
- App is created per run, after the service graph exists
- The lifecycle controller, not the ASGI lifespan, owns startup/shutdown
- REST endpoints for health, system control and metrics
"""

from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..core.config import ResolvedConfiguration
from ..core.logging import get_logger
from ..core.paths import ApplicationPaths
from .routes import health, metrics, system

if TYPE_CHECKING:
    from ..core.container import ApplicationHost

logger = get_logger("api")

APP_NAME = "mediahost"
WEB_CLIENT_MOUNT = "/web"


# ============================================================================
# Create Application
# ============================================================================

def create_app(
    host: "ApplicationHost",
    config: ResolvedConfiguration,
    paths: ApplicationPaths,
) -> FastAPI:
    """
    Create the HTTP application bound to a run's host and configuration.

    Returns:
        Configured FastAPI app
    """
    settings = config.settings
    logger.info(
        "creating_app",
        name=APP_NAME,
        version=__version__,
        host_web_client=settings.host_web_client,
    )

    app = FastAPI(
        title=APP_NAME,
        version=__version__,
        description="Media server API",
        docs_url="/api-docs/swagger",
        redoc_url="/api-docs/redoc",
        openapi_url="/api-docs/openapi.json",
    )
    app.state.host = host
    app.state.config = config
    app.state.paths = paths

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(system.router)
    app.include_router(metrics.router)

    redirect_target = "/" + settings.default_redirect_path.lstrip("/")

    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url=redirect_target)

    if settings.host_web_client:
        app.mount(
            WEB_CLIENT_MOUNT,
            StaticFiles(directory=paths.web_dir, html=True, check_dir=False),
            name="web",
        )

    logger.info("app_created", redirect=redirect_target)
    return app


__all__ = ["create_app"]
