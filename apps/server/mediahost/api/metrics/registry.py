"""
apps/server/mediahost/api/metrics/registry.py
Prometheus metrics for the server lifecycle.
"""

import psutil
from prometheus_client import (
    CollectorRegistry, Counter, Gauge, generate_latest
)

# Global registry instance
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================
# Metric definitions
# =============================
RUNS_TOTAL = Counter(
    "mediahost_runs_total",
    "Completed lifecycle runs by outcome",
    ["outcome"],
    registry=REGISTRY,
)

STARTUP_DURATION = Gauge(
    "mediahost_startup_duration_seconds",
    "Seconds from bootstrap to serving for the current run",
    registry=REGISTRY,
)

LIFECYCLE_STATE = Gauge(
    "mediahost_lifecycle_state",
    "1 for the lifecycle state the controller is currently in, else 0",
    ["state"],
    registry=REGISTRY,
)

STARTUP_TASKS = Counter(
    "mediahost_startup_tasks_total",
    "Startup task executions by result",
    ["task", "status"],
    registry=REGISTRY,
)

CPU_USAGE = Gauge(
    "mediahost_process_cpu_percent",
    "Current CPU utilization percentage of the server process",
    registry=REGISTRY,
)

MEMORY_USAGE = Gauge(
    "mediahost_process_memory_rss_bytes",
    "Resident memory of the server process",
    registry=REGISTRY,
)

# =============================
# Updater helpers
# =============================

def update_process_metrics():
    """Refresh process resource gauges."""
    process = psutil.Process()
    CPU_USAGE.set(process.cpu_percent(interval=None))
    MEMORY_USAGE.set(process.memory_info().rss)


def set_lifecycle_state(state: str, all_states):
    """Flag the current state; every other state is reset to 0."""
    for name in all_states:
        LIFECYCLE_STATE.labels(state=name).set(1 if name == state else 0)


def record_run(outcome: str):
    RUNS_TOTAL.labels(outcome=outcome).inc()


def record_startup_duration(seconds: float):
    STARTUP_DURATION.set(seconds)


def record_startup_task(task: str, success: bool):
    STARTUP_TASKS.labels(task=task, status="success" if success else "failed").inc()


def render_prometheus_metrics():
    """Return text for Prometheus scrape endpoint."""
    update_process_metrics()
    return generate_latest(REGISTRY)
