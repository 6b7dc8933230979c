import json

import pytest

from mediahost.core.config import API_DOCS_REDIRECT, ConfigComposer, ResolvedConfiguration, merge_layers, ConfigLayer
from mediahost.core.exceptions import ConfigInvalid, ConfigMissing
from mediahost.core.options import StartupOptions


def write_json(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")


def compose(app_paths, **options):
    return ConfigComposer(StartupOptions(**options), app_paths).compose()


# ============================================================================
# Layering
# ============================================================================

def test_composition_is_deterministic(app_paths, default_logging_file):
    write_json(app_paths.system_logging_config, {"port": 8100, "logging": {"root": {"level": "DEBUG"}}})
    first = compose(app_paths, port=9000)
    second = compose(app_paths, port=9000)
    assert first.to_json() == second.to_json()
    assert first == second


def test_defaults_fill_absent_keys(app_paths, default_logging_file):
    config = compose(app_paths)
    assert config["port"] == 8096
    assert config["bind_address"] == "0.0.0.0"
    assert config["host_web_client"] is True
    assert config.settings.database_file == "library.db"


def test_system_file_overrides_default_file(app_paths, default_logging_file):
    write_json(app_paths.system_logging_config, {"port": 8100})
    assert compose(app_paths)["port"] == 8100


def test_environment_overrides_file(app_paths, default_logging_file, monkeypatch):
    write_json(app_paths.system_logging_config, {"port": 8100})
    monkeypatch.setenv("MEDIAHOST_PORT", "8200")
    config = compose(app_paths)
    assert config["port"] == 8200
    assert config.settings.port == 8200


def test_command_line_overrides_environment_and_file(app_paths, default_logging_file, monkeypatch):
    write_json(app_paths.system_logging_config, {"port": 8100})
    monkeypatch.setenv("MEDIAHOST_PORT", "8200")
    assert compose(app_paths, port=8300)["port"] == 8300


def test_nested_sections_merge_per_key(app_paths):
    write_json(app_paths.default_logging_config, {
        "logging": {"version": 1, "root": {"level": "INFO", "handlers": []}},
    })
    write_json(app_paths.system_logging_config, {"logging": {"root": {"level": "DEBUG"}}})
    section = compose(app_paths).section("logging")
    assert section["root"] == {"level": "DEBUG", "handlers": []}
    assert section["version"] == 1


def test_sources_are_listed_in_precedence_order(app_paths, default_logging_file):
    write_json(app_paths.system_logging_config, {})
    sources = compose(app_paths).sources
    assert sources[0] == "defaults"
    assert sources[1] == "file:logging.default.json"
    assert sources[2] == "file:logging.json"
    assert sources[-1] == "cli"


def test_merge_layers_later_wins():
    merged = merge_layers([
        ConfigLayer("a", {"x": 1, "nested": {"a": 1, "b": 1}}),
        ConfigLayer("b", {"x": 2, "nested": {"b": 2}}),
    ])
    assert merged == {"x": 2, "nested": {"a": 1, "b": 2}}


# ============================================================================
# Web client redirect
# ============================================================================

def test_hosting_web_client_redirects_to_web(app_paths, default_logging_file):
    assert compose(app_paths)["default_redirect_path"] == "web/"


def test_no_web_client_redirects_to_api_docs(app_paths, default_logging_file):
    config = compose(app_paths, no_web_client=True)
    assert config["host_web_client"] is False
    assert config["default_redirect_path"] == API_DOCS_REDIRECT


def test_no_web_client_from_environment(app_paths, default_logging_file, monkeypatch):
    monkeypatch.setenv("MEDIAHOST_HOST_WEB_CLIENT", "false")
    assert compose(app_paths)["default_redirect_path"] == API_DOCS_REDIRECT


def test_explicit_redirect_wins_over_injected_one(app_paths, default_logging_file):
    write_json(app_paths.system_logging_config, {"default_redirect_path": "custom/"})
    config = compose(app_paths, no_web_client=True)
    assert config["default_redirect_path"] == "custom/"


# ============================================================================
# Failures
# ============================================================================

def test_missing_default_file_raises_config_missing(app_paths):
    with pytest.raises(ConfigMissing) as exc_info:
        compose(app_paths)
    assert exc_info.value.exit_code == 78
    assert str(app_paths.default_logging_config) in exc_info.value.message


def test_unparseable_file_raises_config_invalid(app_paths, default_logging_file):
    app_paths.system_logging_config.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigInvalid):
        compose(app_paths)


def test_non_object_file_raises_config_invalid(app_paths):
    write_json(app_paths.default_logging_config, ["not", "an", "object"])
    with pytest.raises(ConfigInvalid):
        compose(app_paths)


def test_invalid_value_raises_config_invalid(app_paths, default_logging_file):
    write_json(app_paths.system_logging_config, {"port": 0})
    with pytest.raises(ConfigInvalid):
        compose(app_paths)


def test_invalid_socket_permissions_rejected(app_paths, default_logging_file):
    write_json(app_paths.system_logging_config, {"unix_socket_permissions": "999"})
    with pytest.raises(ConfigInvalid):
        compose(app_paths)


# ============================================================================
# Immutability
# ============================================================================

def test_resolved_configuration_is_read_only(app_paths, default_logging_file):
    config = compose(app_paths)
    with pytest.raises(TypeError):
        config["port"] = 1
    with pytest.raises(TypeError):
        config["logging"]["root"] = {}


def test_section_returns_independent_copy(app_paths, default_logging_file):
    config = compose(app_paths)
    section = config.section("logging")
    section["root"]["level"] = "DEBUG"
    assert config.section("logging")["root"]["level"] == "INFO"


def test_both_logging_files_are_watched(app_paths, default_logging_file):
    config = compose(app_paths)
    assert config.watched_files == (app_paths.default_logging_config, app_paths.system_logging_config)


def test_socket_mode_parsed_from_octal(app_paths):
    config = ResolvedConfiguration({"use_unix_socket": True, "unix_socket_permissions": "660"})
    assert config.settings.socket_mode == 0o660
