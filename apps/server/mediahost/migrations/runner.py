"""
apps/server/mediahost/migrations/runner.py
Forward-only migration runner with two explicit entry points.
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

import structlog

from ..core.exceptions import MigrationFailed
from ..core.paths import ApplicationPaths
from .routines import (
    PRE_STARTUP_ROUTINES,
    ROUTINES,
    MigrationRoutine,
    PreStartupRoutine,
)

if TYPE_CHECKING:
    from ..core.container import ApplicationHost

logger = structlog.get_logger(__name__)

PRE_STARTUP_PHASE = "pre_startup"
MAIN_PHASE = "main"


class MigrationState:
    """Applied migration ids per phase, persisted as JSON in the config directory."""

    def __init__(self, path: Path):
        self.path = path
        self._applied: Dict[str, List[str]] = self._load()

    def _load(self) -> Dict[str, List[str]]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise MigrationFailed("state", str(self.path), f"unreadable migration state: {e}") from e
        return {phase: list(ids) for phase, ids in data.get("applied", {}).items()}

    def is_applied(self, phase: str, routine_id: str) -> bool:
        return routine_id in self._applied.get(phase, [])

    def mark_applied(self, phase: str, routine_id: str) -> None:
        applied = self._applied.setdefault(phase, [])
        if routine_id not in applied:
            applied.append(routine_id)
        self._save()

    def applied(self, phase: str) -> List[str]:
        return list(self._applied.get(phase, []))

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps({"applied": self._applied}, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)


class MigrationRunner:
    """
    Applies migrations at the two fixed points the controller calls:

    - ``run_pre_startup(paths)``: before any service is constructed
    - ``run(host)``: after the service graph exists, before the listener starts

    Routines run at most once; failures are not retried.
    """

    def __init__(
        self,
        pre_startup_routines: Optional[Sequence[PreStartupRoutine]] = None,
        routines: Optional[Sequence[MigrationRoutine]] = None,
    ):
        self.pre_startup_routines = list(
            pre_startup_routines if pre_startup_routines is not None else PRE_STARTUP_ROUTINES
        )
        self.routines = list(routines if routines is not None else ROUTINES)

    def run_pre_startup(self, paths: ApplicationPaths) -> List[str]:
        """Apply pending pre-startup routines. Returns the ids that ran."""
        state = MigrationState(paths.migrations_state_file)
        executed = []
        for routine in self.pre_startup_routines:
            if state.is_applied(PRE_STARTUP_PHASE, routine.id):
                continue
            self._apply(PRE_STARTUP_PHASE, routine, lambda r=routine: r.perform(paths))
            state.mark_applied(PRE_STARTUP_PHASE, routine.id)
            executed.append(routine.id)
        logger.info("pre_startup_migrations_completed", executed=len(executed))
        return executed

    def run(self, host: "ApplicationHost") -> List[str]:
        """Apply pending routines against the constructed service graph."""
        state = MigrationState(host.paths.migrations_state_file)
        executed = []
        for routine in self.routines:
            if state.is_applied(MAIN_PHASE, routine.id):
                continue
            self._apply(MAIN_PHASE, routine, lambda r=routine: r.perform(host))
            state.mark_applied(MAIN_PHASE, routine.id)
            executed.append(routine.id)
        logger.info("migrations_completed", executed=len(executed))
        return executed

    @staticmethod
    def _apply(phase: str, routine, perform) -> None:
        logger.info("applying_migration", phase=phase, id=routine.id, migration=routine.name)
        try:
            perform()
        except Exception as e:
            logger.error(
                "migration_failed",
                phase=phase,
                id=routine.id,
                migration=routine.name,
                error=str(e),
                exc_info=True,
            )
            raise MigrationFailed(phase, routine.name, str(e)) from e
        logger.info("migration_applied", phase=phase, id=routine.id, migration=routine.name)


__all__ = ["MigrationRunner", "MigrationState", "PRE_STARTUP_PHASE", "MAIN_PHASE"]
