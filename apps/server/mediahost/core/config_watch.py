"""Live reload of the watched configuration files."""

import asyncio
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import structlog

from .config import ConfigComposer, ResolvedConfiguration
from .exceptions import MediaHostError

logger = structlog.get_logger(__name__)

Snapshot = Dict[Path, Optional[Tuple[int, int]]]


def _stat(path: Path) -> Optional[Tuple[int, int]]:
    try:
        st = path.stat()
    except OSError:
        return None
    return (st.st_mtime_ns, st.st_size)


class ConfigWatcher:
    """
    Polls the composer's watched files and recomposes on change.

    A failed reload is logged and the previous configuration stays active.
    """

    def __init__(
        self,
        composer: ConfigComposer,
        current: ResolvedConfiguration,
        on_reload: Callable[[ResolvedConfiguration], None],
        interval: Optional[float] = None,
    ):
        self.composer = composer
        self.current = current
        self.on_reload = on_reload
        self.interval = interval if interval is not None else current.settings.config_reload_interval
        self.reload_count = 0
        self._snapshot: Snapshot = self.snapshot()
        self._task: Optional[asyncio.Task] = None

    def snapshot(self) -> Snapshot:
        return {path: _stat(path) for path in self.composer.watched_files}

    def check(self) -> bool:
        """Reload if any watched file changed. Returns True when a reload was applied."""
        snapshot = self.snapshot()
        if snapshot == self._snapshot:
            return False
        changed = sorted(str(p) for p in snapshot if snapshot[p] != self._snapshot.get(p))
        self._snapshot = snapshot
        logger.info("config_change_detected", files=changed)
        try:
            config = self.composer.compose()
            self.on_reload(config)
        except MediaHostError as e:
            logger.error("config_reload_failed", **e.to_dict())
            return False
        except Exception as e:
            logger.error(
                "config_reload_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return False
        self.current = config
        self.reload_count += 1
        logger.info("config_reloaded", reloads=self.reload_count)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.check()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="config-watcher")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("config_watcher_failed", error=str(e), error_type=type(e).__name__, exc_info=True)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = ["ConfigWatcher"]
