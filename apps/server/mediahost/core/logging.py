"""
apps/server/mediahost/core/logging.py
Structured logging setup using structlog
"""

import asyncio
import logging
import logging.config
import os
import platform
import shutil
import sys
import threading
from importlib import resources
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import BoundLogger

from .config import ResolvedConfiguration
from .exceptions import ConfigInvalid, ConfigMissing
from .paths import LOG_DIR_ENV, LOGGING_CONFIG_FILE_DEFAULT, ApplicationPaths

ROOT_LOGGER_NAME = "mediahost"


# ============================================================================
# Logging Configuration File
# ============================================================================

def _copy_template(destination: Path) -> None:
    template = resources.files("mediahost.resources").joinpath(LOGGING_CONFIG_FILE_DEFAULT)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with resources.as_file(template) as source:
        shutil.copyfile(source, destination)


async def init_logging_config_file(paths: ApplicationPaths) -> Path:
    """
    Make sure the default logging configuration exists.

    The packaged template is copied into the config directory when the
    file is absent; an existing file is never overwritten.

    Raises:
        ConfigMissing: If the template could not be written
    """
    destination = paths.default_logging_config
    if destination.is_file():
        return destination
    try:
        await asyncio.to_thread(_copy_template, destination)
    except OSError as e:
        raise ConfigMissing(str(destination), f"could not materialize default: {e}") from e
    return destination


# ============================================================================
# Logging Framework
# ============================================================================

def _substitute_log_dir(section: Dict[str, Any], paths: ApplicationPaths) -> Dict[str, Any]:
    mapping = dict(os.environ)
    mapping[LOG_DIR_ENV] = str(paths.log_dir)
    handlers = section.get("handlers", {})
    if not isinstance(handlers, dict) or not all(isinstance(h, dict) for h in handlers.values()):
        raise ConfigInvalid("logging", "'handlers' must map handler names to handler objects")
    for handler in handlers.values():
        filename = handler.get("filename")
        if isinstance(filename, str):
            resolved = Path(Template(filename).safe_substitute(mapping))
            resolved.parent.mkdir(parents=True, exist_ok=True)
            handler["filename"] = str(resolved)
    return section


def initialize_logging(config: ResolvedConfiguration, paths: ApplicationPaths) -> BoundLogger:
    """
    Configure stdlib handlers from the resolved configuration and structlog on top.

    Returns:
        Root application logger
    """
    section = _substitute_log_dir(config.section("logging"), paths)
    if section:
        section.setdefault("version", 1)
        try:
            logging.config.dictConfig(section)
        except (ValueError, TypeError, AttributeError, ImportError) as e:
            raise ConfigInvalid("logging", str(e)) from e
    else:
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=logging.INFO)

    _configure_structlog(config.settings.log_format)

    logger = get_logger()
    logger.debug(
        "logging_configured",
        format=config.settings.log_format,
        handlers=sorted(section.get("handlers", {})),
    )
    return logger


def configure_fallback_logging() -> None:
    """
    Minimal stderr logging for failures that happen before the resolved
    configuration exists (e.g. a missing default logging file).
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(message)s", stream=sys.stderr, level=logging.INFO)
    _configure_structlog("console")


def _configure_structlog(log_format: str) -> None:
    # Shared processors for all logs
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=False)
        ]

    # Loggers are not cached so a reload takes effect on module-level loggers
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None) -> BoundLogger:
    """
    Get a logger instance

    Args:
        name: Logger name (e.g., "lifecycle", "storage")

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(f"{ROOT_LOGGER_NAME}.{name}")
    return structlog.get_logger(ROOT_LOGGER_NAME)


def log_environment_info(logger: BoundLogger, paths: ApplicationPaths) -> None:
    """Log the runtime environment once per run."""
    logger.info(
        "environment_info",
        python=platform.python_version(),
        os=platform.platform(),
        pid=os.getpid(),
        **paths.to_dict(),
    )


# ============================================================================
# Uncaught Exceptions
# ============================================================================

def install_exception_hooks(logger: BoundLogger) -> None:
    """Route uncaught exceptions to the logging framework instead of stderr."""

    def _sys_hook(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical("unhandled_exception", exc_info=(exc_type, exc_value, exc_tb))

    def _thread_hook(args):
        if args.exc_type is SystemExit:
            return
        logger.critical(
            "unhandled_thread_exception",
            thread=getattr(args.thread, "name", None),
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    sys.excepthook = _sys_hook
    threading.excepthook = _thread_hook


def install_loop_exception_handler(loop: asyncio.AbstractEventLoop, logger: BoundLogger) -> None:
    def _handler(_loop, context):
        exception = context.get("exception")
        logger.critical(
            "unhandled_task_exception",
            message=context.get("message"),
            exc_info=exception if exception is not None else False,
        )

    loop.set_exception_handler(_handler)


# ============================================================================
# Context Manager for Run Logging
# ============================================================================

class LogContext:
    """
    Context manager for adding run-specific context to logs

    Usage:
        with LogContext(run=2):
            logger.info("startup_complete")
    """

    def __init__(self, **kwargs):
        self.context = kwargs

    def __enter__(self):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        structlog.contextvars.clear_contextvars()
        return False


# ============================================================================
# Export
# ============================================================================

__all__ = [
    "init_logging_config_file",
    "initialize_logging",
    "configure_fallback_logging",
    "get_logger",
    "log_environment_info",
    "install_exception_hooks",
    "install_loop_exception_handler",
    "LogContext",
]
