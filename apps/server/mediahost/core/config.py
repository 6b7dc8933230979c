"""
apps/server/mediahost/core/config.py
Layered configuration using Pydantic Settings

Layers, lowest precedence first:
    1. built-in defaults (ServerSettings field defaults)
    2. logging.default.json   (required)
    3. logging.json           (optional system override)
    4. MEDIAHOST_* environment variables
    5. command line overrides
"""

import copy
import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Literal, Mapping, NamedTuple, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, EnvSettingsSource, SettingsConfigDict

from .exceptions import ConfigInvalid, ConfigMissing
from .options import StartupOptions
from .paths import ApplicationPaths

ENV_PREFIX = "MEDIAHOST_"
ENV_NESTED_DELIMITER = "__"

HOST_WEB_CLIENT_KEY = "host_web_client"
DEFAULT_REDIRECT_KEY = "default_redirect_path"

WEB_CLIENT_REDIRECT = "web/"
API_DOCS_REDIRECT = "api-docs/swagger"


class ServerSettings(BaseSettings):
    """
    Typed view over a resolved configuration.

    Only init kwargs are accepted as a source: precedence between files,
    environment and command line is decided by ConfigComposer.
    """
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter=ENV_NESTED_DELIMITER,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ========================================================================
    # Web Client
    # ========================================================================
    host_web_client: bool = True
    default_redirect_path: str = WEB_CLIENT_REDIRECT
    published_server_url: Optional[str] = None

    # ========================================================================
    # Listener
    # ========================================================================
    bind_address: str = "0.0.0.0"
    port: int = Field(default=8096, ge=1, le=65535)
    use_unix_socket: bool = False
    unix_socket_path: Optional[str] = None
    unix_socket_permissions: Optional[str] = None  # octal, e.g. "660"
    graceful_shutdown_timeout: float = Field(default=30.0, ge=0)

    # ========================================================================
    # Logging
    # ========================================================================
    log_format: Literal["json", "console"] = "console"
    logging: Dict[str, Any] = Field(default_factory=dict)
    config_reload_interval: float = Field(default=2.0, gt=0)

    # ========================================================================
    # Storage / Media
    # ========================================================================
    database_file: str = "library.db"
    ffmpeg_path: Optional[str] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (init_settings,)

    @field_validator("unix_socket_permissions")
    def validate_permissions(cls, v):
        """Socket permissions must be an octal mode string"""
        if v is None:
            return v
        try:
            mode = int(v, 8)
        except ValueError:
            raise ValueError(f"'{v}' is not an octal permission mode")
        if not 0 <= mode <= 0o777:
            raise ValueError(f"'{v}' is outside the permission range 000-777")
        return v

    @property
    def socket_mode(self) -> Optional[int]:
        if self.unix_socket_permissions is None:
            return None
        return int(self.unix_socket_permissions, 8)


def default_configuration() -> Dict[str, Any]:
    """Built-in defaults layer."""
    return ServerSettings().model_dump(exclude_none=True, exclude={"logging"})


# ============================================================================
# Resolved Configuration
# ============================================================================

def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


class ResolvedConfiguration(Mapping):
    """
    Immutable result of one composition.

    Values are exposed read-only; ``section()`` hands out deep copies for
    consumers (like ``logging.config.dictConfig``) that need plain dicts.
    """

    def __init__(
        self,
        values: Mapping[str, Any],
        sources: Tuple[str, ...] = (),
        watched_files: Tuple[Path, ...] = (),
    ):
        plain: Dict[str, Any] = copy.deepcopy(dict(values))
        try:
            self._settings = ServerSettings(**copy.deepcopy(plain))
        except ValidationError as e:
            raise ConfigInvalid("resolved configuration", str(e)) from e

        # Environment values arrive as strings; keep the validated form of known keys
        for key in plain:
            if key in ServerSettings.model_fields:
                plain[key] = copy.deepcopy(getattr(self._settings, key))
        self._plain = plain
        self._frozen = _freeze(plain)
        self._sources = tuple(sources)
        self._watched_files = tuple(watched_files)

    def __getitem__(self, key: str) -> Any:
        return self._frozen[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._frozen)

    def __len__(self) -> int:
        return len(self._frozen)

    def __repr__(self) -> str:
        return f"ResolvedConfiguration(sources={list(self._sources)!r}, keys={sorted(self._frozen)!r})"

    @property
    def settings(self) -> ServerSettings:
        return self._settings

    @property
    def sources(self) -> Tuple[str, ...]:
        return self._sources

    @property
    def watched_files(self) -> Tuple[Path, ...]:
        return self._watched_files

    def section(self, name: str) -> Dict[str, Any]:
        value = self._plain.get(name, {})
        return copy.deepcopy(value) if isinstance(value, dict) else {}

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._plain)

    def to_json(self) -> str:
        """Canonical serialization; identical inputs give identical output."""
        return json.dumps(self._plain, sort_keys=True, default=str)


# ============================================================================
# Composer
# ============================================================================

class ConfigLayer(NamedTuple):
    name: str
    values: Dict[str, Any]


def merge_layers(layers: List[ConfigLayer]) -> Dict[str, Any]:
    """Deep-merge layers; later layers win, nested mappings merge per key."""
    def merge(target: Dict[str, Any], overrides: Mapping[str, Any]) -> None:
        for key, value in overrides.items():
            if isinstance(value, Mapping) and isinstance(target.get(key), dict):
                merge(target[key], value)
            else:
                target[key] = copy.deepcopy(dict(value)) if isinstance(value, Mapping) else copy.deepcopy(value)

    result: Dict[str, Any] = {}
    for layer in layers:
        merge(result, layer.values)
    return result


def read_json_layer(path: Path, required: bool) -> Optional[ConfigLayer]:
    """
    Read one JSON configuration file.

    Raises:
        ConfigMissing: If a required file does not exist
        ConfigInvalid: If the file is not a JSON object
    """
    if not path.is_file():
        if required:
            raise ConfigMissing(str(path))
        return None
    try:
        values = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigInvalid(str(path), str(e)) from e
    if not isinstance(values, dict):
        raise ConfigInvalid(str(path), "top-level value must be a JSON object")
    return ConfigLayer(f"file:{path.name}", values)


def read_environment_layer() -> ConfigLayer:
    source = EnvSettingsSource(
        ServerSettings,
        case_sensitive=False,
        env_prefix=ENV_PREFIX,
        env_nested_delimiter=ENV_NESTED_DELIMITER,
    )
    return ConfigLayer(f"env:{ENV_PREFIX}", dict(source()))


class ConfigComposer:
    """
    Composes a ResolvedConfiguration for one run.

    Usage:
        config = ConfigComposer(options, paths).compose()
        config.settings.port
    """

    def __init__(self, options: StartupOptions, paths: ApplicationPaths):
        self.options = options
        self.paths = paths

    @property
    def watched_files(self) -> Tuple[Path, ...]:
        return (self.paths.default_logging_config, self.paths.system_logging_config)

    def compose(self) -> ResolvedConfiguration:
        defaults = default_configuration()
        layers: List[ConfigLayer] = []

        layers.append(read_json_layer(self.paths.default_logging_config, required=True))
        system_layer = read_json_layer(self.paths.system_logging_config, required=False)
        if system_layer is not None:
            layers.append(system_layer)
        layers.append(read_environment_layer())
        layers.append(ConfigLayer("cli", self.options.to_config()))

        resolved = self._resolve(defaults, layers)
        if not resolved.settings.host_web_client:
            # Use the API docs page as the default redirect path when not hosting the web client
            defaults = dict(defaults, **{DEFAULT_REDIRECT_KEY: API_DOCS_REDIRECT})
            resolved = self._resolve(defaults, layers)
        return resolved

    def _resolve(self, defaults: Dict[str, Any], layers: List[ConfigLayer]) -> ResolvedConfiguration:
        all_layers = [ConfigLayer("defaults", defaults)] + layers
        return ResolvedConfiguration(
            merge_layers(all_layers),
            sources=tuple(layer.name for layer in all_layers),
            watched_files=self.watched_files,
        )


# ============================================================================
# Export
# ============================================================================

__all__ = [
    "ServerSettings",
    "ResolvedConfiguration",
    "ConfigComposer",
    "ConfigLayer",
    "merge_layers",
    "default_configuration",
    "API_DOCS_REDIRECT",
    "HOST_WEB_CLIENT_KEY",
    "DEFAULT_REDIRECT_KEY",
]
