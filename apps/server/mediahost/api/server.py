"""
apps/server/mediahost/api/server.py
HTTP listener for the media server.

Responsibilities:
- Configure uvicorn from the resolved configuration (TCP or unix socket)
- Bind and start serving without blocking the controller
- Wait for a shutdown signal or a programmatic shutdown request
- Stop and release the listener
"""

import asyncio
import os
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional

import structlog
import uvicorn
from fastapi import FastAPI

from ..core.config import ResolvedConfiguration, ServerSettings
from ..core.exceptions import ListenerBindFailed
from ..core.paths import ApplicationPaths
from ..lifecycle.health_registry import HealthStatus, get_health_registry
from .main import create_app

if TYPE_CHECKING:
    from ..core.container import ApplicationHost

logger = structlog.get_logger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class WebHost:
    """
    uvicorn server driven step by step by the lifecycle controller.

    ``start()`` returns once the socket is bound, ``wait_for_shutdown()``
    blocks until SIGINT/SIGTERM or ``request_shutdown()``, and ``dispose()``
    releases everything. Logging is left to the application's own
    configuration (uvicorn's ``log_config`` is disabled).
    """

    def __init__(self, app: FastAPI, settings: ServerSettings):
        self.app = app
        self.settings = settings
        self.config = uvicorn.Config(
            app=app,
            host=settings.bind_address,
            port=settings.port,
            uds=settings.unix_socket_path if settings.use_unix_socket else None,
            lifespan="off",
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=settings.graceful_shutdown_timeout,
        )
        self.server: Optional[uvicorn.Server] = None
        self._installed_signals: List[signal.Signals] = []
        self._previous_handlers = {}
        self._stopped = False
        self._disposed = False

    @property
    def bind_description(self) -> str:
        if self.settings.use_unix_socket:
            return f"unix:{self.settings.unix_socket_path}"
        return f"http://{self.settings.bind_address}:{self.settings.port}"

    @property
    def started(self) -> bool:
        return self.server is not None and self.server.started

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """
        Bind the listener and start accepting connections.

        Raises:
            ListenerBindFailed: If the address cannot be bound
        """
        if self.server is not None:
            logger.warning("web_host_already_started")
            return

        health_registry = get_health_registry()
        health_registry.register_component("web_host", HealthStatus.UNKNOWN, address=self.bind_description)

        if self.settings.use_unix_socket and not self.settings.unix_socket_path:
            health_registry.mark_failed("web_host", "unix socket path not configured")
            raise ListenerBindFailed(self.bind_description, "use_unix_socket is set without unix_socket_path")

        server = uvicorn.Server(self.config)
        self.server = server
        try:
            if not self.config.loaded:
                self.config.load()
            server.lifespan = self.config.lifespan_class(self.config)
            # uvicorn reports bind errors by logging and calling sys.exit(1)
            await server.startup()
        except (OSError, SystemExit) as e:
            health_registry.mark_failed("web_host", str(e) or "bind failed")
            raise ListenerBindFailed(self.bind_description, str(e) or "bind failed") from e

        if server.should_exit or not server.started:
            health_registry.mark_failed("web_host", "listener did not start")
            raise ListenerBindFailed(self.bind_description, "listener did not start")

        self._install_signal_handlers()
        health_registry.mark_healthy("web_host", address=self.bind_description)
        logger.info("web_host_started", address=self.bind_description)

    async def wait_for_shutdown(self) -> None:
        """Serve until a shutdown is requested, then stop gracefully."""
        if self.server is None:
            return
        await self.server.main_loop()
        logger.info("web_host_stopping", timeout=self.config.timeout_graceful_shutdown)
        get_health_registry().register_component(
            "web_host", HealthStatus.DEGRADED, status_message="Shutting down"
        )
        await self.server.shutdown()
        self._stopped = True
        logger.info("web_host_stopped")

    def request_shutdown(self) -> None:
        if self.server is not None:
            self.server.should_exit = True

    def apply_socket_permissions(self, mode: int) -> None:
        """chmod the bound unix socket."""
        path = Path(self.settings.unix_socket_path)
        os.chmod(path, mode)
        logger.info("socket_permissions_applied", path=str(path), mode=oct(mode))

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._remove_signal_handlers()
        if self.server is not None and self.server.started and not self._stopped:
            self.server.should_exit = True
            await self.server.shutdown()
            self._stopped = True
        self.server = None
        get_health_registry().register_component(
            "web_host", HealthStatus.UNKNOWN, status_message="Stopped"
        )
        logger.info("web_host_disposed")

    # ------------------------------------------------------------------ #
    # Signals
    # ------------------------------------------------------------------ #

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        if self.server is not None:
            if self.server.should_exit and sig == signal.SIGINT:
                self.server.force_exit = True
            self.server.should_exit = True

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops, or not running in the main thread
                try:
                    self._previous_handlers[sig] = signal.signal(
                        sig, lambda signum, frame: self._handle_signal(signal.Signals(signum))
                    )
                except ValueError:
                    continue
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for sig in self._installed_signals:
            if sig in self._previous_handlers:
                previous = self._previous_handlers.pop(sig)
                signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
            elif loop is not None:
                loop.remove_signal_handler(sig)
        self._installed_signals.clear()


ListenerFactory = Callable[..., WebHost]


def create_web_host(
    host: "ApplicationHost", config: ResolvedConfiguration, paths: ApplicationPaths
) -> WebHost:
    """Default listener factory: the HTTP app wired to this run's host and configuration."""
    return WebHost(create_app(host, config, paths), config.settings)


__all__ = ["WebHost", "create_web_host", "ListenerFactory"]
