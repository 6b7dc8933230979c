"""
Lifecycle management for the media server process.
Run state machine, startup tasks and health tracking.
"""

from .health_registry import ComponentHealth, HealthRegistry, HealthStatus, get_health_registry
from .registry import StartupTaskRegistry, register_startup_task, startup_tasks
from .state import LifecycleState, RunOutcome
from .tasks import BaseStartupTask, TaskPriority, TaskState


__all__ = [
    "LifecycleState",
    "RunOutcome",
    "BaseStartupTask",
    "TaskState",
    "TaskPriority",
    "StartupTaskRegistry",
    "register_startup_task",
    "startup_tasks",
    "HealthRegistry",
    "ComponentHealth",
    "HealthStatus",
    "get_health_registry",
]
