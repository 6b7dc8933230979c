"""Schema and configuration migrations."""

from .runner import MigrationRunner, MigrationState
from .routines import MigrationRoutine, PreStartupRoutine

__all__ = ["MigrationRunner", "MigrationState", "MigrationRoutine", "PreStartupRoutine"]
