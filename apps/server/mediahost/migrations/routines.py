"""Migration routines, in application order per phase."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List

import structlog

from ..core.paths import LOGGING_CONFIG_FILE_SYSTEM, ApplicationPaths

if TYPE_CHECKING:
    from ..core.container import ApplicationHost

logger = structlog.get_logger(__name__)

LEGACY_LOGGING_CONFIG_FILE = "logging.user.json"


class PreStartupRoutine(ABC):
    """Runs before the service graph exists; may only touch paths and files."""

    id: str
    name: str

    @abstractmethod
    def perform(self, paths: ApplicationPaths) -> None:
        ...


class MigrationRoutine(ABC):
    """Runs against the constructed service graph."""

    id: str
    name: str

    @abstractmethod
    def perform(self, host: "ApplicationHost") -> None:
        ...


# ============================================================================
# Pre-startup
# ============================================================================

class MigrateLegacyLoggingConfig(PreStartupRoutine):
    id = "5e3a4c1f-0b7d-4f0e-9a55-6c2a1d7b8e01"
    name = "MigrateLegacyLoggingConfig"

    def perform(self, paths: ApplicationPaths) -> None:
        legacy = paths.config_dir / LEGACY_LOGGING_CONFIG_FILE
        target = paths.config_dir / LOGGING_CONFIG_FILE_SYSTEM
        if not legacy.is_file():
            return
        if target.exists():
            logger.warning("legacy_logging_config_ignored", legacy=str(legacy), existing=str(target))
            return
        legacy.rename(target)
        logger.info("legacy_logging_config_migrated", source=str(legacy), target=str(target))


# ============================================================================
# Post-construction
# ============================================================================

class CreateStorageSchema(MigrationRoutine):
    id = "9d1f6b2e-3c4a-4e8b-b7f0-2a6d5c8e1f02"
    name = "CreateStorageSchema"

    def perform(self, host: "ApplicationHost") -> None:
        host.storage.create_schema()


class AddLibraryItemPathIndex(MigrationRoutine):
    id = "c7e2a9d4-6f1b-4a3c-8e5d-0b9f4a2c7d03"
    name = "AddLibraryItemPathIndex"

    def perform(self, host: "ApplicationHost") -> None:
        host.storage.execute(
            "CREATE INDEX IF NOT EXISTS ix_library_items_path ON library_items (path)"
        )


PRE_STARTUP_ROUTINES: List[PreStartupRoutine] = [
    MigrateLegacyLoggingConfig(),
]

ROUTINES: List[MigrationRoutine] = [
    CreateStorageSchema(),
    AddLibraryItemPathIndex(),
]
