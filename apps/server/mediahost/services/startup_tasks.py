"""
apps/server/mediahost/services/startup_tasks.py
One-time tasks executed after the listener is live.
"""

import asyncio
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from ..lifecycle.registry import register_startup_task
from ..lifecycle.tasks import BaseStartupTask, TaskPriority

if TYPE_CHECKING:
    from ..core.container import ApplicationHost


def _purge_directory(directory: Path) -> int:
    removed = 0
    if not directory.is_dir():
        return removed
    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed


@register_startup_task
class PurgeTranscodeCache(BaseStartupTask):
    """Remove transcode segments left behind by the previous run."""

    name = "PurgeTranscodeCache"
    priority = TaskPriority.HIGH

    async def run(self, host: "ApplicationHost") -> None:
        directory = host.paths.transcode_dir
        removed = await asyncio.to_thread(_purge_directory, directory)
        self.metadata["removed"] = removed
        self.safe_log("transcode_cache_purged", directory=str(directory), removed=removed)


@register_startup_task
class RecordServerStarted(BaseStartupTask):
    name = "RecordServerStarted"
    priority = TaskPriority.LOW
    depends_on = ["PurgeTranscodeCache"]

    async def run(self, host: "ApplicationHost") -> None:
        await asyncio.to_thread(host.storage.record_activity, "Server started", "ServerStarted")
        self.safe_log("activity_recorded", kind="ServerStarted")


__all__ = ["PurgeTranscodeCache", "RecordServerStarted"]
