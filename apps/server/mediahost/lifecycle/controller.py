"""
apps/server/mediahost/lifecycle/controller.py
Lifecycle controller: one run from bootstrap to disposal.

Order of a run:
1. Bootstrap paths and process environment
2. Materialize logging config, compose configuration, start logging
3. Preflight checks
4. Pre-startup migrations
5. Construct the service graph and the listener
6. Initialize services, run migrations, start the listener
7. Socket permissions (unix sockets only)
8. Startup tasks
9. Serve until shutdown or restart is requested
10. Maintenance, then dispose

The outer driver (``run_server``) starts a fresh controller for every
restart; nothing survives from one run to the next except the options.
"""

import asyncio
import os
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, MutableMapping, Optional

from .. import __version__
from ..api.metrics import registry as metrics
from ..api.server import create_web_host
from ..core.config import ConfigComposer, ResolvedConfiguration
from ..core.config_watch import ConfigWatcher
from ..core.container import ApplicationHost
from ..core.exceptions import MediaHostError, PreflightFailed, UnhandledRuntimeFault
from ..core.logging import (
    LogContext,
    configure_fallback_logging,
    get_logger,
    init_logging_config_file,
    initialize_logging,
    install_exception_hooks,
    install_loop_exception_handler,
    log_environment_info,
)
from ..core.options import StartupOptions
from ..core.paths import LOG_DIR_ENV, ApplicationPaths, create_application_paths
from ..core.preflight import PreflightValidator
from ..migrations import MigrationRunner
from .health_registry import get_health_registry
from .state import TEARDOWN_STATES, LifecycleState, RunOutcome

logger = get_logger("lifecycle")

# Exported unconditionally for the media encoders' GPU runtimes
PLATFORM_COMPAT_ENV = {
    "NEOReadDebugKeys": "1",
    "EnableExtendedVaFormats": "1",
}

ALL_STATES = [state.value for state in LifecycleState]

HostFactory = Callable[[ApplicationPaths, ResolvedConfiguration], ApplicationHost]


class LifecycleController:
    """
    Drives a single run through the LifecycleState sequence.

    Collaborators are injectable so a run can be exercised without binding
    sockets or touching the real environment.

    Usage:
        outcome = await LifecycleController(options).run()
        if outcome.should_restart:
            ...
    """

    def __init__(
        self,
        options: StartupOptions,
        run_number: int = 1,
        host_factory: HostFactory = ApplicationHost,
        listener_factory: Callable = create_web_host,
        migration_runner: Optional[MigrationRunner] = None,
        preflight: Optional[PreflightValidator] = None,
        clock: Callable[[], float] = time.monotonic,
        environ: Optional[MutableMapping[str, str]] = None,
        platform: str = sys.platform,
        watch_config: bool = True,
    ):
        self.options = options
        self.run_number = run_number
        self.host_factory = host_factory
        self.listener_factory = listener_factory
        self.migrations = migration_runner if migration_runner is not None else MigrationRunner()
        self.preflight = preflight if preflight is not None else PreflightValidator()
        self.clock = clock
        self.environ = environ if environ is not None else os.environ
        self.platform = platform
        self.watch_config = watch_config

        self.history: List[LifecycleState] = []
        self.started_at: Optional[float] = None
        self.startup_seconds: Optional[float] = None
        self.paths: Optional[ApplicationPaths] = None
        self.composer: Optional[ConfigComposer] = None
        self.config: Optional[ResolvedConfiguration] = None
        self.host: Optional[ApplicationHost] = None
        self.listener = None
        self.watcher: Optional[ConfigWatcher] = None
        self.maintenance_ran = False
        self._logging_ready = False
        self._interrupted = False

    @property
    def state(self) -> Optional[LifecycleState]:
        return self.history[-1] if self.history else None

    def _enter(self, state: LifecycleState) -> None:
        self.history.append(state)
        get_health_registry().set_lifecycle_state(state.value)
        metrics.set_lifecycle_state(state.value, ALL_STATES)
        if self._logging_ready:
            logger.debug("lifecycle_state_changed", state=state.value)

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #

    async def run(self) -> RunOutcome:
        with LogContext(run=self.run_number):
            error: Optional[MediaHostError] = None
            try:
                self._bootstrap()
                await self._prepare_logging()
                self._validate()
                await self._pre_migrate()
                async with self._service_graph() as host:
                    error = await self._drive(host)
            except MediaHostError as e:
                error = self._fail(e)
            except Exception as e:
                error = self._fail(UnhandledRuntimeFault(self._phase(), e))
            except asyncio.CancelledError:
                self._interrupt()
            return self._finish(error)

    async def _drive(self, host: ApplicationHost) -> Optional[MediaHostError]:
        """Everything between construction and teardown; failures end here."""
        try:
            await self._start(host)
            self._platform_setup()
            await self._run_tasks(host)
            await self._serve()
        except MediaHostError as e:
            return self._fail(e)
        except Exception as e:
            return self._fail(UnhandledRuntimeFault(self._phase(), e))
        return None

    def _phase(self) -> str:
        return self.state.value if self.state is not None else "startup"

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def _bootstrap(self) -> None:
        get_health_registry().reset(self.run_number)
        self._enter(LifecycleState.BOOTSTRAPPING)
        self.started_at = self.clock()

        self.paths = create_application_paths(self.options, self.environ, self.platform)
        try:
            self.paths.ensure_directories()
        except OSError as e:
            raise PreflightFailed(
                f"Could not create application directories: {e}", details=self.paths.to_dict()
            ) from e

        self.environ[LOG_DIR_ENV] = str(self.paths.log_dir)
        for key, value in PLATFORM_COMPAT_ENV.items():
            self.environ[key] = value

    async def _prepare_logging(self) -> None:
        await init_logging_config_file(self.paths)
        self.composer = ConfigComposer(self.options, self.paths)
        self.config = self.composer.compose()

        initialize_logging(self.config, self.paths)
        install_exception_hooks(logger)
        install_loop_exception_handler(asyncio.get_running_loop(), logger)
        self._logging_ready = True
        self._enter(LifecycleState.LOGGING_READY)

        logger.info("server_starting", version=__version__, sources=list(self.config.sources))
        log_environment_info(logger, self.paths)

    def _validate(self) -> None:
        result = self.preflight.validate(self.paths, self.config.settings)
        if not result.passed:
            raise PreflightFailed(result.reason, details={"web_dir": str(self.paths.web_dir)})
        self._enter(LifecycleState.VALIDATED)

    async def _pre_migrate(self) -> None:
        await asyncio.to_thread(self.migrations.run_pre_startup, self.paths)
        self._enter(LifecycleState.PRE_MIGRATED)

    @asynccontextmanager
    async def _service_graph(self) -> AsyncIterator[ApplicationHost]:
        """
        Owns the service graph: once the host exists, maintenance and
        disposal run exactly once however the body ends.
        """
        self.host = self.host_factory(self.paths, self.config)
        try:
            self.listener = self.listener_factory(self.host, self.config, self.paths)
            self.host.set_shutdown_callback(self.listener.request_shutdown)
            self._enter(LifecycleState.INITIALIZED)
            yield self.host
        finally:
            await self._stop_watcher()
            self._enter(LifecycleState.MAINTENANCE)
            await self._maintenance(self.host)
            self._enter(LifecycleState.DISPOSED)
            await self._dispose()

    async def _start(self, host: ApplicationHost) -> None:
        self._enter(LifecycleState.STARTING)
        await host.initialize_services()
        await asyncio.to_thread(self.migrations.run, host)
        await self.listener.start()

    def _platform_setup(self) -> None:
        self._enter(LifecycleState.PLATFORM_SETUP)
        settings = self.config.settings
        if self.platform.startswith("win") or not settings.use_unix_socket:
            return
        if settings.socket_mode is None:
            return
        try:
            self.listener.apply_socket_permissions(settings.socket_mode)
        except OSError as e:
            logger.warning(
                "socket_permissions_failed",
                path=settings.unix_socket_path,
                permissions=settings.unix_socket_permissions,
                error=str(e),
            )

    async def _run_tasks(self, host: ApplicationHost) -> None:
        self._enter(LifecycleState.RUNNING_TASKS)
        await host.run_startup_tasks()

    async def _serve(self) -> None:
        self._enter(LifecycleState.SERVING)
        self.startup_seconds = self.clock() - self.started_at
        metrics.record_startup_duration(self.startup_seconds)
        logger.info(
            "startup_complete",
            elapsed_seconds=round(self.startup_seconds, 3),
            address=getattr(self.listener, "bind_description", None),
        )

        if self.watch_config:
            self.watcher = ConfigWatcher(self.composer, self.config, self._apply_reloaded_config)
            self.watcher.start()

        await self.listener.wait_for_shutdown()

    def _apply_reloaded_config(self, config: ResolvedConfiguration) -> None:
        # Only logging is reconfigured live; the listener keeps this run's settings
        initialize_logging(config, self.paths)

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    async def _stop_watcher(self) -> None:
        if self.watcher is None:
            return
        try:
            await self.watcher.stop()
        except Exception as e:
            logger.error("config_watcher_stop_failed", error=str(e), exc_info=True)

    async def _maintenance(self, host: ApplicationHost) -> None:
        self.maintenance_ran = True
        try:
            storage = host.storage
            if storage.supports_query_optimization:
                await asyncio.to_thread(storage.optimize)
                logger.info("storage_optimized")
        except Exception as e:
            logger.error("maintenance_failed", error=str(e), error_type=type(e).__name__, exc_info=True)

    async def _dispose(self) -> None:
        if self.listener is not None:
            try:
                await self.listener.dispose()
            except Exception as e:
                logger.error("listener_dispose_failed", error=str(e), exc_info=True)
        try:
            self.host.dispose()
        except Exception as e:
            logger.error("host_dispose_failed", error=str(e), exc_info=True)

    # ------------------------------------------------------------------ #
    # Outcome
    # ------------------------------------------------------------------ #

    def _fail(self, error: MediaHostError) -> MediaHostError:
        """Single sink for every error that ends a run."""
        if not self._logging_ready:
            configure_fallback_logging()
        logger.critical("run_failed", state=self._phase(), run=self.run_number, **error.to_dict())
        return error

    def _interrupt(self) -> None:
        """An operator interrupt ends the run like a shutdown: no error, no restart."""
        self._interrupted = True
        if not self._logging_ready:
            configure_fallback_logging()
        reached = [s.value for s in self.history if s not in TEARDOWN_STATES]
        logger.warning("run_interrupted", state=reached[-1] if reached else None, run=self.run_number)

    def _finish(self, error: Optional[MediaHostError]) -> RunOutcome:
        reached = [s for s in self.history if s not in TEARDOWN_STATES]
        if self.state is not LifecycleState.DISPOSED:
            self._enter(LifecycleState.DISPOSED)

        outcome = RunOutcome(
            exit_code=error.exit_code if error is not None else 0,
            should_restart=not self._interrupted and self.host is not None and self.host.should_restart,
            state=reached[-1] if reached else None,
            error=error,
        )
        metrics.record_run(outcome.label)
        if self._logging_ready:
            logger.info(
                "run_finished",
                exit_code=outcome.exit_code,
                restart=outcome.should_restart,
                last_state=outcome.state.value if outcome.state else None,
            )
        return outcome


# ============================================================================
# Outer Driver
# ============================================================================

async def run_server(options: StartupOptions, **controller_kwargs) -> int:
    """
    Run the server until it stops without requesting a restart.

    Every restart gets a brand-new controller, timestamp, configuration
    and service graph.

    Returns:
        Exit code of the last run
    """
    run_number = 0
    while True:
        run_number += 1
        controller = LifecycleController(options, run_number=run_number, **controller_kwargs)
        outcome = await controller.run()
        if not outcome.should_restart:
            return outcome.exit_code
        logger.info("server_restarting", next_run=run_number + 1)


__all__ = ["LifecycleController", "run_server", "PLATFORM_COMPAT_ENV"]
