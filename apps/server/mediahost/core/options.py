"""
apps/server/mediahost/core/options.py
Command line options for the server process.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import click
import typer

from .exceptions import ArgumentParseError


@dataclass(frozen=True)
class StartupOptions:
    """Parsed command-line intent for one start attempt."""

    data_dir: Optional[Path] = None
    config_dir: Optional[Path] = None
    log_dir: Optional[Path] = None
    cache_dir: Optional[Path] = None
    web_dir: Optional[Path] = None
    no_web_client: bool = False
    bind_address: Optional[str] = None
    port: Optional[int] = None
    unix_socket: Optional[Path] = None
    published_server_url: Optional[str] = None
    ffmpeg_path: Optional[Path] = None

    def to_config(self) -> Dict[str, Any]:
        """Configuration overrides for the options that were actually given."""
        config: Dict[str, Any] = {}
        if self.no_web_client:
            config["host_web_client"] = False
        if self.bind_address is not None:
            config["bind_address"] = self.bind_address
        if self.port is not None:
            config["port"] = self.port
        if self.unix_socket is not None:
            config["use_unix_socket"] = True
            config["unix_socket_path"] = str(self.unix_socket)
        if self.published_server_url is not None:
            config["published_server_url"] = self.published_server_url
        if self.ffmpeg_path is not None:
            config["ffmpeg_path"] = str(self.ffmpeg_path)
        return config


def _build_command() -> click.Command:
    app = typer.Typer(
        name="mediahost",
        help="Media server host process",
        add_completion=False,
    )

    @app.command()
    def serve(
        data_dir: Optional[Path] = typer.Option(
            None, "--datadir", "-d", help="Path to use for the data folder (database files, etc.)"
        ),
        config_dir: Optional[Path] = typer.Option(
            None, "--configdir", "-c", help="Path to use for configuration data"
        ),
        log_dir: Optional[Path] = typer.Option(
            None, "--logdir", "-l", help="Path to use for writing log files"
        ),
        cache_dir: Optional[Path] = typer.Option(
            None, "--cachedir", "-C", help="Path to use for caching"
        ),
        web_dir: Optional[Path] = typer.Option(
            None, "--webdir", "-w", help="Path to the web client content"
        ),
        no_web_client: bool = typer.Option(
            False, "--nowebclient", help="Do not host the web client"
        ),
        bind_address: Optional[str] = typer.Option(
            None, "--bind-address", help="Address the listener binds to"
        ),
        port: Optional[int] = typer.Option(
            None, "--port", min=1, max=65535, help="Port the listener binds to"
        ),
        unix_socket: Optional[Path] = typer.Option(
            None, "--unix-socket", help="Bind a unix socket at this path instead of a port"
        ),
        published_server_url: Optional[str] = typer.Option(
            None, "--published-server-url", help="Server URL advertised to clients"
        ),
        ffmpeg_path: Optional[Path] = typer.Option(
            None, "--ffmpeg", help="Path to the ffmpeg executable"
        ),
    ) -> StartupOptions:
        """Start the media server."""
        return StartupOptions(
            data_dir=data_dir,
            config_dir=config_dir,
            log_dir=log_dir,
            cache_dir=cache_dir,
            web_dir=web_dir,
            no_web_client=no_web_client,
            bind_address=bind_address,
            port=port,
            unix_socket=unix_socket,
            published_server_url=published_server_url,
            ffmpeg_path=ffmpeg_path,
        )

    return typer.main.get_command(app)


def parse_args(argv: Sequence[str]) -> Union[StartupOptions, int]:
    """
    Parse command line arguments.

    Returns:
        StartupOptions, or an exit code when the parser handled the
        invocation itself (e.g. ``--help``).

    Raises:
        ArgumentParseError: On unknown options or invalid values
    """
    command = _build_command()
    args: List[str] = list(argv)
    try:
        result = command.main(args=args, prog_name="mediahost", standalone_mode=False)
    except click.ClickException as exc:
        raise ArgumentParseError(exc.format_message()) from exc
    if isinstance(result, StartupOptions):
        return result
    return result or 0


__all__ = ["StartupOptions", "parse_args"]
