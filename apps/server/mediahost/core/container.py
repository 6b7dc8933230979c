"""
apps/server/mediahost/core/container.py
Service graph for one run.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import structlog

from ..api.metrics.registry import record_startup_task
from ..lifecycle.health_registry import HealthStatus, get_health_registry
from ..lifecycle.registry import StartupTaskRegistry
from ..lifecycle.registry import startup_tasks as default_task_registry
from ..services import startup_tasks as _builtin_tasks  # noqa: F401  registers the shipped tasks
from ..services.storage import StorageProvider
from .config import ResolvedConfiguration, ServerSettings
from .exceptions import StartupTaskFailed
from .paths import ApplicationPaths

logger = structlog.get_logger(__name__)


class ApplicationHost:
    """
    Owns the services of one run: storage and the startup tasks.

    Constructed by the controller once preflight and pre-startup migrations
    have passed; never reused across runs.
    """

    def __init__(
        self,
        paths: ApplicationPaths,
        config: ResolvedConfiguration,
        task_registry: Optional[StartupTaskRegistry] = None,
    ):
        self.paths = paths
        self.config = config
        self.task_registry = task_registry if task_registry is not None else default_task_registry
        self.task_results: Dict[str, Dict[str, Any]] = {}
        self.dispose_count = 0

        self._storage = StorageProvider.for_sqlite_file(
            paths.database_path(config.settings.database_file)
        )
        self._restart_requested = False
        self._shutdown_callback: Optional[Callable[[], None]] = None
        self._disposed = False

        get_health_registry().register_component(
            "storage", HealthStatus.UNKNOWN, dialect=self._storage.dialect
        )
        logger.info("application_host_created", data_dir=str(paths.data_dir))

    @property
    def settings(self) -> ServerSettings:
        return self.config.settings

    @property
    def storage(self) -> StorageProvider:
        return self._storage

    @property
    def should_restart(self) -> bool:
        return self._restart_requested

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------ #
    # Startup
    # ------------------------------------------------------------------ #

    async def initialize_services(self) -> None:
        """Open storage; schema creation is left to the migrations."""
        health_registry = get_health_registry()
        try:
            await asyncio.to_thread(self._storage.execute, "SELECT 1")
        except Exception as e:
            health_registry.mark_failed("storage", str(e))
            raise
        health_registry.mark_healthy("storage", dialect=self._storage.dialect)
        logger.info("services_initialized")

    async def run_startup_tasks(self) -> Dict[str, Dict[str, Any]]:
        """
        Run the registered startup tasks in dependency order.

        Non-critical failures are logged and the remaining tasks still run.

        Raises:
            StartupTaskFailed: If a task marked critical fails
        """
        health_registry = get_health_registry()
        tasks = self.task_registry.create_tasks()
        health_registry.register_component("startup_tasks", HealthStatus.UNKNOWN, total=len(tasks))

        failed = []
        for task in tasks:
            task.mark_started()
            try:
                await task.run(self)
            except Exception as e:
                task.mark_finished(e)
                self.task_results[task.name] = task.get_metrics()
                record_startup_task(task.name, success=False)
                task.log_error("startup_task_failed", e)
                if task.critical:
                    health_registry.mark_failed("startup_tasks", f"{task.name}: {e}")
                    raise StartupTaskFailed(task.name, str(e)) from e
                failed.append(task.name)
                continue
            task.mark_finished()
            self.task_results[task.name] = task.get_metrics()
            record_startup_task(task.name, success=True)

        if failed:
            health_registry.mark_degraded(
                "startup_tasks", f"{len(failed)} task(s) failed", failed=failed, total=len(tasks)
            )
        else:
            health_registry.mark_healthy("startup_tasks", total=len(tasks))
        logger.info("startup_tasks_completed", total=len(tasks), failed=len(failed))
        return self.task_results

    # ------------------------------------------------------------------ #
    # Shutdown / Restart
    # ------------------------------------------------------------------ #

    def set_shutdown_callback(self, callback: Callable[[], None]) -> None:
        self._shutdown_callback = callback

    def request_shutdown(self) -> None:
        logger.info("shutdown_requested", restart=self._restart_requested)
        if self._shutdown_callback is not None:
            self._shutdown_callback()

    def request_restart(self) -> None:
        self._restart_requested = True
        self.request_shutdown()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.dispose_count += 1
        self._storage.dispose()
        get_health_registry().register_component("storage", HealthStatus.UNKNOWN, status_message="Disposed")
        logger.info("application_host_disposed")


__all__ = ["ApplicationHost"]
