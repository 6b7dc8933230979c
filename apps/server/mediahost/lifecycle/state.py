"""Lifecycle states and the value a run hands back to the driver."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.exceptions import MediaHostError


class LifecycleState(Enum):
    """States of one run, in the order the controller enters them."""
    BOOTSTRAPPING = "bootstrapping"
    LOGGING_READY = "logging_ready"
    VALIDATED = "validated"
    PRE_MIGRATED = "pre_migrated"
    INITIALIZED = "initialized"
    STARTING = "starting"
    PLATFORM_SETUP = "platform_setup"
    RUNNING_TASKS = "running_tasks"
    SERVING = "serving"
    MAINTENANCE = "maintenance"
    DISPOSED = "disposed"


TEARDOWN_STATES = (LifecycleState.MAINTENANCE, LifecycleState.DISPOSED)


@dataclass(frozen=True)
class RunOutcome:
    """
    Result of ``LifecycleController.run()``.

    ``state`` is the last state the run reached before teardown, i.e. where
    it stopped serving or where it failed.
    """
    exit_code: int
    should_restart: bool = False
    state: Optional[LifecycleState] = None
    error: Optional[MediaHostError] = None

    @property
    def label(self) -> str:
        if self.should_restart:
            return "restart"
        if self.error is not None:
            return "failed"
        return "shutdown"


__all__ = ["LifecycleState", "RunOutcome", "TEARDOWN_STATES"]
