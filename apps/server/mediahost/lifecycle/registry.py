"""Startup task registry with dependency validation and ordering."""
from typing import Dict, List, Optional, Set, Type

import structlog

from .tasks import BaseStartupTask

logger = structlog.get_logger(__name__)


class StartupTaskRegistry:
    """
    Registry of startup task classes.

    Features:
    - Decorator-based registration
    - Dependency validation
    - Circular dependency detection
    - Priority-based ordering that respects dependencies
    """

    def __init__(self):
        self._tasks: List[Type[BaseStartupTask]] = []
        self._task_map: Dict[str, Type[BaseStartupTask]] = {}

    def register(self, task_class: Type[BaseStartupTask]) -> Type[BaseStartupTask]:
        """
        Register a task class.

        Args:
            task_class: The task class to register

        Returns:
            The same task class (for use as decorator)

        Raises:
            TypeError: If task doesn't inherit from BaseStartupTask
            ValueError: If task name is invalid
        """
        if not isinstance(task_class, type) or not issubclass(task_class, BaseStartupTask):
            raise TypeError(f"{task_class!r} must inherit from BaseStartupTask")

        if task_class.name == "UnnamedTask":
            raise ValueError(f"Task {task_class.__name__} must define a 'name' attribute")

        if task_class.name in self._task_map:
            existing = self._task_map[task_class.name]
            logger.warning(
                "duplicate_task_registration",
                name=task_class.name,
                existing_class=existing.__name__,
                new_class=task_class.__name__,
                action="skipping"
            )
            return task_class

        self._tasks.append(task_class)
        self._task_map[task_class.name] = task_class

        logger.debug(
            "task_registered",
            name=task_class.name,
            priority=task_class.priority.value,
            critical=task_class.critical,
            depends_on=task_class.depends_on
        )
        return task_class

    def get_all(self) -> List[Type[BaseStartupTask]]:
        return self._tasks.copy()

    def get_by_name(self, name: str) -> Optional[Type[BaseStartupTask]]:
        return self._task_map.get(name)

    def validate_dependencies(self) -> bool:
        """
        Validate that all task dependencies are registered.

        Raises:
            ValueError: If any dependency is missing or circular
        """
        all_names = set(self._task_map.keys())

        for task_class in self._tasks:
            for dep in task_class.depends_on:
                if dep not in all_names:
                    raise ValueError(
                        f"Task '{task_class.name}' depends on '{dep}' "
                        f"which is not registered. Available: {sorted(all_names)}"
                    )

        self._check_circular_dependencies()
        return True

    def _check_circular_dependencies(self) -> None:
        """Detect circular dependencies using depth-first search."""
        def visit(node: str, visited: Set[str], rec_stack: Set[str], path: List[str]) -> None:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            task_class = self._task_map.get(node)
            if task_class:
                for dep in task_class.depends_on:
                    if dep not in visited:
                        visit(dep, visited, rec_stack, path)
                    elif dep in rec_stack:
                        cycle_start = path.index(dep)
                        cycle = " -> ".join(path[cycle_start:] + [dep])
                        raise ValueError(f"Circular dependency detected: {cycle}")

            path.pop()
            rec_stack.remove(node)

        visited: Set[str] = set()
        for name in self._task_map:
            if name not in visited:
                visit(name, visited, set(), [])

    def get_execution_order(self) -> List[Type[BaseStartupTask]]:
        """
        Tasks sorted by (priority, name), with every task placed after its dependencies.
        """
        self.validate_dependencies()
        ordered: List[Type[BaseStartupTask]] = []
        placed: Set[str] = set()

        def place(task_class: Type[BaseStartupTask]) -> None:
            if task_class.name in placed:
                return
            for dep in sorted(task_class.depends_on):
                place(self._task_map[dep])
            placed.add(task_class.name)
            ordered.append(task_class)

        for task_class in sorted(self._tasks, key=lambda t: (t.priority.value, t.name)):
            place(task_class)
        return ordered

    def create_tasks(self) -> List[BaseStartupTask]:
        """Fresh task instances for one run."""
        return [task_class() for task_class in self.get_execution_order()]

    def clear(self) -> None:
        """Clear all registrations (for testing only)."""
        self._tasks.clear()
        self._task_map.clear()


# Default registry for tasks shipped with the server
startup_tasks = StartupTaskRegistry()


def register_startup_task(task_class: Type[BaseStartupTask]) -> Type[BaseStartupTask]:
    """
    Decorator for registering a task with the default registry.

    Usage:
        @register_startup_task
        class PurgeTranscodeCache(BaseStartupTask):
            name = "PurgeTranscodeCache"
            priority = TaskPriority.HIGH

            async def run(self, host):
                ...
    """
    return startup_tasks.register(task_class)
