"""Health and lifecycle status tracking shared by the controller and the HTTP API."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(Enum):
    """Component health status levels."""
    HEALTHY = "healthy"          # Fully operational
    DEGRADED = "degraded"        # Partially functional
    UNHEALTHY = "unhealthy"      # Not functional
    UNKNOWN = "unknown"          # Status not yet determined


@dataclass
class ComponentHealth:
    """Health information for a single component."""
    name: str
    status: HealthStatus
    last_check: datetime = field(default_factory=_now)
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    consecutive_failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            "name": self.name,
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "error_message": self.error_message,
            "metadata": self.metadata,
            "consecutive_failures": self.consecutive_failures,
        }


class HealthRegistry:
    """
    Thread-safe registry of component health plus the current lifecycle state.

    The controller resets it at the start of every run, so a restarted
    process never reports components from the previous run.
    """

    def __init__(self):
        self._components: Dict[str, ComponentHealth] = {}
        self._lock = RLock()
        self.lifecycle_state: Optional[str] = None
        self.run_number: int = 0

    def reset(self, run_number: int) -> None:
        with self._lock:
            self._components.clear()
            self.lifecycle_state = None
            self.run_number = run_number
        logger.debug("health_registry_reset", run=run_number)

    def set_lifecycle_state(self, state: str) -> None:
        with self._lock:
            self.lifecycle_state = state

    def _update(
        self,
        name: str,
        status: HealthStatus,
        error: Optional[str] = None,
        **metadata
    ) -> ComponentHealth:
        with self._lock:
            component = self._components.get(name)
            if component is None:
                component = ComponentHealth(name=name, status=status)
                self._components[name] = component
            component.status = status
            component.last_check = _now()
            component.metadata.update(metadata)
            if status == HealthStatus.HEALTHY:
                component.consecutive_failures = 0
                component.error_message = None
            elif error is not None:
                component.consecutive_failures += 1
                component.error_message = error
            return component

    def register_component(self, name: str, status: HealthStatus = HealthStatus.UNKNOWN, **metadata) -> None:
        self._update(name, status, **metadata)
        logger.debug("health_status_updated", component=name, status=status.value)

    def mark_healthy(self, name: str, **metadata) -> None:
        """Mark a component as healthy."""
        self._update(name, HealthStatus.HEALTHY, **metadata)

    def mark_degraded(self, name: str, reason: str, **metadata) -> None:
        """Mark a component as degraded (partially functional)."""
        self._update(name, HealthStatus.DEGRADED, error=reason, **metadata)
        logger.warning("component_degraded", component=name, reason=reason)

    def mark_failed(self, name: str, error: str, **metadata) -> None:
        """Mark a component as completely failed."""
        self._update(name, HealthStatus.UNHEALTHY, error=error, **metadata)
        logger.error("component_failed", component=name, error=error)

    def get_component_health(self, name: str) -> Optional[ComponentHealth]:
        with self._lock:
            return self._components.get(name)

    def get_overall_status(self) -> HealthStatus:
        """
        Overall health:
        - UNHEALTHY: Any component is unhealthy
        - DEGRADED: Any component is degraded
        - HEALTHY: All components healthy
        - UNKNOWN: No components, or some not yet determined
        """
        with self._lock:
            if not self._components:
                return HealthStatus.UNKNOWN

            statuses = [c.status for c in self._components.values()]

            if HealthStatus.UNHEALTHY in statuses:
                return HealthStatus.UNHEALTHY
            if HealthStatus.DEGRADED in statuses:
                return HealthStatus.DEGRADED
            if all(s == HealthStatus.HEALTHY for s in statuses):
                return HealthStatus.HEALTHY
            return HealthStatus.UNKNOWN

    def get_health_summary(self) -> Dict[str, Any]:
        with self._lock:
            components = {
                name: health.to_dict()
                for name, health in self._components.items()
            }
            counts = {status.value: 0 for status in HealthStatus}
            for c in components.values():
                counts[c["status"]] += 1

            return {
                "overall_status": self.get_overall_status().value,
                "lifecycle_state": self.lifecycle_state,
                "run": self.run_number,
                "timestamp": _now().isoformat(),
                "components": components,
                "summary": {"total": len(components), **counts},
            }


_health_registry = HealthRegistry()


def get_health_registry() -> HealthRegistry:
    """Get the process-wide health registry instance."""
    return _health_registry


__all__ = ["HealthRegistry", "HealthStatus", "ComponentHealth", "get_health_registry"]
