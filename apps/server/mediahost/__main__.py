"""
Command line entry point.

    python -m mediahost --datadir /srv/media --nowebclient
"""

import asyncio
import sys
from typing import Optional, Sequence

from .core.exceptions import ArgumentParseError
from .core.options import parse_args
from .lifecycle.controller import run_server


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        options = parse_args(sys.argv[1:] if argv is None else argv)
    except ArgumentParseError as e:
        print(e.message, file=sys.stderr)
        return e.exit_code
    if isinstance(options, int):
        return options
    try:
        return asyncio.run(run_server(options))
    except KeyboardInterrupt:
        # Interrupted outside a run, or again while a run was tearing down
        return 0


if __name__ == "__main__":
    sys.exit(main())
