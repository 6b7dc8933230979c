import json
import logging
from importlib import resources

import pytest
import structlog

from mediahost.core.config import ConfigComposer
from mediahost.core.exceptions import ConfigInvalid
from mediahost.core.logging import (
    LogContext,
    get_logger,
    init_logging_config_file,
    initialize_logging,
)
from mediahost.core.options import StartupOptions


def packaged_template() -> str:
    return resources.files("mediahost.resources").joinpath("logging.default.json").read_text(encoding="utf-8")


def flush_root_handlers():
    for handler in logging.getLogger().handlers:
        handler.flush()


@pytest.mark.asyncio
async def test_missing_default_file_is_materialized_from_template(app_paths):
    assert not app_paths.default_logging_config.exists()

    path = await init_logging_config_file(app_paths)

    assert path == app_paths.default_logging_config
    assert path.read_text(encoding="utf-8") == packaged_template()


@pytest.mark.asyncio
async def test_existing_default_file_is_left_alone(app_paths, default_logging_file):
    before = default_logging_file.read_text(encoding="utf-8")
    await init_logging_config_file(app_paths)
    assert default_logging_file.read_text(encoding="utf-8") == before


@pytest.mark.asyncio
async def test_template_logs_to_file_in_log_dir(app_paths):
    await init_logging_config_file(app_paths)
    config = ConfigComposer(StartupOptions(), app_paths).compose()

    initialize_logging(config, app_paths)
    get_logger("test").info("file_handler_check", answer=42)
    flush_root_handlers()

    log_file = app_paths.log_dir / "mediahost.log"
    assert log_file.is_file()
    assert "file_handler_check" in log_file.read_text(encoding="utf-8")


def test_json_format_renders_json(app_paths, capsys):
    app_paths.default_logging_config.write_text(json.dumps({
        "log_format": "json",
        "logging": {
            "version": 1,
            "disable_existing_loggers": False,
            "handlers": {"out": {"class": "logging.StreamHandler", "stream": "ext://sys.stdout"}},
            "root": {"level": "INFO", "handlers": ["out"]},
        },
    }), encoding="utf-8")
    config = ConfigComposer(StartupOptions(), app_paths).compose()

    initialize_logging(config, app_paths)
    with LogContext(run=3):
        get_logger("test").info("json_check")
    flush_root_handlers()

    lines = [line for line in capsys.readouterr().out.splitlines() if "json_check" in line]
    assert lines
    event = json.loads(lines[-1])
    assert event["event"] == "json_check"
    assert event["run"] == 3
    assert event["logger"] == "mediahost.test"


def test_invalid_logging_section_raises_config_invalid(app_paths):
    app_paths.default_logging_config.write_text(json.dumps({
        "logging": {
            "version": 1,
            "handlers": {"broken": {"class": "no.such.Handler"}},
            "root": {"handlers": ["broken"]},
        },
    }), encoding="utf-8")
    config = ConfigComposer(StartupOptions(), app_paths).compose()

    with pytest.raises(ConfigInvalid):
        initialize_logging(config, app_paths)


def test_log_context_is_cleared_on_exit():
    with LogContext(run=7):
        assert structlog.contextvars.get_contextvars() == {"run": 7}
    assert structlog.contextvars.get_contextvars() == {}


def test_handlers_listed_instead_of_mapped_raise_config_invalid(app_paths):
    app_paths.default_logging_config.write_text(
        json.dumps({"logging": {"version": 1, "handlers": ["console"]}}), encoding="utf-8"
    )
    config = ConfigComposer(StartupOptions(), app_paths).compose()

    with pytest.raises(ConfigInvalid):
        initialize_logging(config, app_paths)
