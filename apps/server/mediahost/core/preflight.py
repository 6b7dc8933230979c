"""Checks that must pass before any migration or service construction."""

from dataclasses import dataclass
from typing import Optional

from .config import ENV_PREFIX, HOST_WEB_CLIENT_KEY, ServerSettings
from .paths import ApplicationPaths


@dataclass(frozen=True)
class PreflightResult:
    passed: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "PreflightResult":
        return cls(passed=True)

    @classmethod
    def fail(cls, reason: str) -> "PreflightResult":
        return cls(passed=False, reason=reason)


class PreflightValidator:
    """Validates environment invariants for a resolved configuration."""

    def validate(self, paths: ApplicationPaths, settings: ServerSettings) -> PreflightResult:
        if not settings.host_web_client:
            return PreflightResult.ok()

        web_dir = paths.web_dir
        try:
            has_content = web_dir.is_dir() and any(web_dir.iterdir())
        except OSError as e:
            return PreflightResult.fail(f"The web client content directory {web_dir} is not readable: {e}")
        if not has_content:
            return PreflightResult.fail(
                "The server is expected to host the web client, but the provided content "
                f"directory is either invalid or empty: {web_dir}. If you do not want to host "
                "the web client with the server, you may set the '--nowebclient' command line "
                f"flag, or set '{ENV_PREFIX}{HOST_WEB_CLIENT_KEY.upper()}=false' "
                f"('{HOST_WEB_CLIENT_KEY}': false) in your config settings"
            )
        return PreflightResult.ok()


__all__ = ["PreflightResult", "PreflightValidator"]
