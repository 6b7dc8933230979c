import logging
import os
import sys
import threading
from pathlib import Path

import pytest
import structlog

from mediahost.core.options import StartupOptions
from mediahost.core.paths import ApplicationPaths
from mediahost.lifecycle.health_registry import get_health_registry


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Drop MEDIAHOST_* variables inherited from the developer's shell."""
    for key in list(os.environ):
        if key.startswith("MEDIAHOST_"):
            monkeypatch.delenv(key)
    yield


@pytest.fixture(autouse=True)
def restore_logging():
    """dictConfig and the exception hooks are process-global; put them back."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    excepthook = sys.excepthook
    thread_hook = threading.excepthook

    yield

    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    sys.excepthook = excepthook
    threading.excepthook = thread_hook
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def reset_health_registry():
    get_health_registry().reset(0)
    yield
    get_health_registry().reset(0)


@pytest.fixture
def web_dir(tmp_path) -> Path:
    directory = tmp_path / "web"
    directory.mkdir()
    (directory / "index.html").write_text("<html>mediahost</html>", encoding="utf-8")
    return directory


@pytest.fixture
def startup_options(tmp_path, web_dir) -> StartupOptions:
    return StartupOptions(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        log_dir=tmp_path / "log",
        cache_dir=tmp_path / "cache",
        web_dir=web_dir,
    )


@pytest.fixture
def app_paths(tmp_path, web_dir) -> ApplicationPaths:
    paths = ApplicationPaths(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        log_dir=tmp_path / "log",
        cache_dir=tmp_path / "cache",
        web_dir=web_dir,
    )
    paths.ensure_directories()
    return paths


@pytest.fixture
def default_logging_file(app_paths) -> Path:
    """Minimal default logging config in the config dir (no file handler)."""
    app_paths.default_logging_config.write_text(
        '{"log_format": "console", "logging": {"version": 1, '
        '"disable_existing_loggers": false, "root": {"level": "INFO"}}}',
        encoding="utf-8",
    )
    return app_paths.default_logging_config
