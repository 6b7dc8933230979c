"""Base classes and enums for one-time startup tasks."""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog

if TYPE_CHECKING:
    from ..core.container import ApplicationHost

logger = structlog.get_logger(__name__)


class TaskState(Enum):
    """Execution states for a startup task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskPriority(Enum):
    """
    Startup task ordering.
    Lower values run first.
    """
    CRITICAL = 0      # Must run before anything else touches storage
    HIGH = 10         # Housekeeping the server relies on
    NORMAL = 20       # Standard tasks
    LOW = 30          # Informational tasks (activity log, announcements)


class BaseStartupTask(ABC):
    """
    Abstract base class for tasks executed once the listener is live.

    A failing task is logged and the run continues, unless ``critical``
    is set, in which case the failure aborts the run.
    """

    # Override these in subclasses
    name: str = "UnnamedTask"
    priority: TaskPriority = TaskPriority.NORMAL
    critical: bool = False
    depends_on: List[str] = []  # Names of tasks that must run first

    def __init__(self):
        self.state = TaskState.PENDING
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.error: Optional[str] = None
        self.metadata: Dict[str, Any] = {}
        self._logger = structlog.get_logger(f"task.{self.name}")

    @abstractmethod
    async def run(self, host: "ApplicationHost") -> None:
        """
        Execute the task against the constructed service graph.

        Raise on failure; the host decides whether the failure is fatal.
        """

    def get_metrics(self) -> Dict[str, Any]:
        duration = None
        if self.started_at and self.finished_at:
            duration = (self.finished_at - self.started_at).total_seconds()

        return {
            "state": self.state.value,
            "critical": self.critical,
            "duration_seconds": duration,
            "error": self.error,
            "metadata": self.metadata,
        }

    def mark_started(self) -> None:
        self.state = TaskState.RUNNING
        self.started_at = datetime.now(timezone.utc)

    def mark_finished(self, error: Optional[BaseException] = None) -> None:
        self.finished_at = datetime.now(timezone.utc)
        if error is None:
            self.state = TaskState.COMPLETED
        else:
            self.state = TaskState.FAILED
            self.error = str(error)

    def safe_log(self, event: str, **kwargs):
        """Helper for structured logging."""
        self._logger.info(event, task=self.name, **kwargs)

    def log_error(self, event: str, error: Exception, **kwargs):
        """Helper for error logging with full context."""
        self._logger.error(
            event,
            task=self.name,
            error=str(error),
            error_type=type(error).__name__,
            critical=self.critical,
            **kwargs,
            exc_info=True
        )
