"""
apps/server/mediahost/core/exceptions.py
Error taxonomy for server bootstrap and lifecycle
"""

from typing import Optional


class MediaHostError(Exception):
    """Base exception for all bootstrap/lifecycle errors"""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "exit_code": self.exit_code,
        }


# ============================================================================
# Command line / Configuration
# ============================================================================

class ArgumentParseError(MediaHostError):
    """Command line could not be parsed"""

    exit_code = 1

    def __init__(self, reason: str):
        super().__init__(
            message=f"Invalid command line: {reason}",
            error_code="ARGUMENT_PARSE_FAILED",
            details={"reason": reason}
        )


class ConfigMissing(MediaHostError):
    """A required configuration file is absent and could not be materialized"""

    exit_code = 78

    def __init__(self, path: str, reason: str = "file not found"):
        super().__init__(
            message=f"Required configuration file '{path}' is missing: {reason}",
            error_code="CONFIG_MISSING",
            details={"path": path, "reason": reason}
        )


class ConfigInvalid(MediaHostError):
    """A configuration file exists but cannot be parsed or validated"""

    exit_code = 78

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Invalid configuration in '{source}': {reason}",
            error_code="CONFIG_INVALID",
            details={"source": source, "reason": reason}
        )


# ============================================================================
# Startup Phases
# ============================================================================

class PreflightFailed(MediaHostError):
    """An environment precondition does not hold"""

    exit_code = 1

    def __init__(self, reason: str, details: Optional[dict] = None):
        super().__init__(
            message=reason,
            error_code="PREFLIGHT_FAILED",
            details=details
        )


class MigrationFailed(MediaHostError):
    """A migration routine failed"""

    exit_code = 70

    def __init__(self, phase: str, migration: str, reason: str):
        super().__init__(
            message=f"Migration '{migration}' ({phase}) failed: {reason}",
            error_code="MIGRATION_FAILED",
            details={"phase": phase, "migration": migration, "reason": reason}
        )


class ListenerBindFailed(MediaHostError):
    """The network listener could not start"""

    exit_code = 69

    hint = (
        "The address may already be in use or the configured bind address, port "
        "or unix socket path may be invalid. Check the bind_address, port and "
        "unix_socket_path settings (--bind-address, --port, --unix-socket)"
    )

    def __init__(self, address: str, reason: str):
        super().__init__(
            message=f"Listener failed to start on {address}: {reason}. {self.hint}",
            error_code="LISTENER_BIND_FAILED",
            details={"address": address, "reason": reason}
        )


class StartupTaskFailed(MediaHostError):
    """A startup task marked critical failed"""

    exit_code = 70

    def __init__(self, task: str, reason: str):
        super().__init__(
            message=f"Critical startup task '{task}' failed: {reason}",
            error_code="STARTUP_TASK_FAILED",
            details={"task": task, "reason": reason}
        )


# ============================================================================
# Runtime
# ============================================================================

class UnhandledRuntimeFault(MediaHostError):
    """Unexpected exception caught at the outermost lifecycle boundary"""

    exit_code = 70

    def __init__(self, phase: str, error: BaseException):
        super().__init__(
            message=f"Unhandled {type(error).__name__} during {phase}: {error}",
            error_code="UNHANDLED_RUNTIME_FAULT",
            details={"phase": phase, "error_type": type(error).__name__}
        )


# ============================================================================
# Export
# ============================================================================

__all__ = [
    "MediaHostError",
    "ArgumentParseError",
    "ConfigMissing",
    "ConfigInvalid",
    "PreflightFailed",
    "MigrationFailed",
    "ListenerBindFailed",
    "StartupTaskFailed",
    "UnhandledRuntimeFault",
]
