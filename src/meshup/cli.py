#!/usr/bin/env python3
"""meshup command-line entry point.

Usage:
    meshup [-v] up [flags]

Environment variables:
    MESHUP_SOCKET        Daemon local API socket
    MESHUP_LOG_LEVEL     Console log level (default: WARNING)
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from .daemon import DaemonError, LocalAPIClient
from .settings import ClientSettings
from .up import AccidentalRevertError, UpEngine, UpError, UsageError, new_up_flag_set
from .up.flags import ParsedFlags, UpArgs, current_goos, detect_distro
from .up.engine import UpResult
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def _run_up(
    settings: ClientSettings,
    goos: str,
    distro: Optional[str],
    up_args: UpArgs,
    parsed: ParsedFlags,
) -> UpResult:
    async with LocalAPIClient(settings) as client:
        engine = UpEngine(client, goos=goos, distro=distro)
        return await engine.run(up_args, parsed)


def run_up(argv: list[str]) -> int:
    """Run the up command; returns the process exit status."""
    goos = current_goos()
    distro = detect_distro()
    fs = new_up_flag_set(goos, distro)

    try:
        up_args, parsed = fs.parse(argv)
    except UsageError as e:
        print(f"up: {e}", file=sys.stderr)
        return 2

    settings = ClientSettings.load()
    logger.debug(f"Using daemon socket {settings.socket_path}")

    try:
        result = asyncio.run(_run_up(settings, goos, distro, up_args, parsed))
    except KeyboardInterrupt:
        return 130
    except AccidentalRevertError as e:
        sys.stderr.write(str(e))
        return 1
    except (UpError, DaemonError) as e:
        logger.debug(f"up failed: {e!r}")
        print(e, file=sys.stderr)
        return 1

    logger.info(f"up finished via {result.mode.value}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="meshup",
        description="Mesh VPN client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Bring the network up, logging in if needed
    meshup up

    # Advertise a subnet and an ACL tag
    meshup up --advertise-routes=10.0.0.0/24 --advertise-tags=tag:eng
""",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument("command", choices=["up"], help="command to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help=argparse.SUPPRESS)

    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    if args.command == "up":
        return run_up(args.args)
    return 2


if __name__ == "__main__":
    sys.exit(main())
