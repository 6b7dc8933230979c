"""
apps/server/mediahost/core/paths.py
Filesystem locations used by the server process.
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .options import StartupOptions


APP_DIR_NAME = "mediahost"

LOGGING_CONFIG_FILE_DEFAULT = "logging.default.json"
LOGGING_CONFIG_FILE_SYSTEM = "logging.json"
MIGRATIONS_STATE_FILE = "migrations.json"

# Environment variables consulted when the matching option is absent
DATA_DIR_ENV = "MEDIAHOST_DATA_DIR"
CONFIG_DIR_ENV = "MEDIAHOST_CONFIG_DIR"
LOG_DIR_ENV = "MEDIAHOST_LOG_DIR"
CACHE_DIR_ENV = "MEDIAHOST_CACHE_DIR"
WEB_DIR_ENV = "MEDIAHOST_WEB_DIR"

# Installation root: apps/server/
BASE_DIR = Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class ApplicationPaths:
    """Resolved directories for one run."""

    data_dir: Path
    config_dir: Path
    log_dir: Path
    cache_dir: Path
    web_dir: Path

    @property
    def default_logging_config(self) -> Path:
        return self.config_dir / LOGGING_CONFIG_FILE_DEFAULT

    @property
    def system_logging_config(self) -> Path:
        return self.config_dir / LOGGING_CONFIG_FILE_SYSTEM

    @property
    def migrations_state_file(self) -> Path:
        return self.config_dir / MIGRATIONS_STATE_FILE

    @property
    def transcode_dir(self) -> Path:
        return self.cache_dir / "transcodes"

    def database_path(self, file_name: str) -> Path:
        return self.data_dir / file_name

    def ensure_directories(self) -> None:
        """Create the writable directories (the web dir is never created)."""
        for directory in (self.data_dir, self.config_dir, self.log_dir, self.cache_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        return {
            "data_dir": str(self.data_dir),
            "config_dir": str(self.config_dir),
            "log_dir": str(self.log_dir),
            "cache_dir": str(self.cache_dir),
            "web_dir": str(self.web_dir),
        }


def _from_env(environ: Mapping[str, str], key: str) -> Optional[Path]:
    value = environ.get(key)
    return Path(value) if value else None


def _xdg_dir(environ: Mapping[str, str], xdg_key: str, fallback: str, platform: str) -> Path:
    if platform.startswith("win"):
        local_app_data = environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / APP_DIR_NAME
    base = environ.get(xdg_key)
    if base:
        return Path(base) / APP_DIR_NAME
    home = environ.get("HOME") or str(Path.home())
    return Path(home) / fallback / APP_DIR_NAME


def create_application_paths(
    options: StartupOptions,
    environ: Mapping[str, str],
    platform: str = sys.platform,
) -> ApplicationPaths:
    """
    Resolve application paths from options, environment and platform defaults.

    Precedence per directory is: command line option, environment variable,
    then the platform default. When the data directory was given explicitly
    the config directory defaults to ``<data>/config``, and the log directory
    always defaults to ``<data>/log``.

    Args:
        options: Parsed command line options
        environ: Environment mapping (normally ``os.environ``)
        platform: ``sys.platform`` value

    Returns:
        Immutable ApplicationPaths
    """
    explicit_data_dir = options.data_dir or _from_env(environ, DATA_DIR_ENV)
    data_dir = explicit_data_dir or _xdg_dir(environ, "XDG_DATA_HOME", ".local/share", platform)

    config_dir = options.config_dir or _from_env(environ, CONFIG_DIR_ENV)
    if config_dir is None:
        if explicit_data_dir is not None or platform.startswith("win"):
            config_dir = data_dir / "config"
        else:
            config_dir = _xdg_dir(environ, "XDG_CONFIG_HOME", ".config", platform)

    cache_dir = options.cache_dir or _from_env(environ, CACHE_DIR_ENV)
    if cache_dir is None:
        if platform.startswith("win"):
            cache_dir = data_dir / "cache"
        else:
            cache_dir = _xdg_dir(environ, "XDG_CACHE_HOME", ".cache", platform)

    log_dir = options.log_dir or _from_env(environ, LOG_DIR_ENV) or data_dir / "log"
    web_dir = options.web_dir or _from_env(environ, WEB_DIR_ENV) or BASE_DIR / "web"

    return ApplicationPaths(
        data_dir=Path(data_dir).expanduser().absolute(),
        config_dir=Path(config_dir).expanduser().absolute(),
        log_dir=Path(log_dir).expanduser().absolute(),
        cache_dir=Path(cache_dir).expanduser().absolute(),
        web_dir=Path(web_dir).expanduser().absolute(),
    )


__all__ = [
    "ApplicationPaths",
    "create_application_paths",
    "LOGGING_CONFIG_FILE_DEFAULT",
    "LOGGING_CONFIG_FILE_SYSTEM",
    "LOG_DIR_ENV",
]
