"""Command-line interface for the Scallop leverage loop."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from .config import load_config
from .errors import LeverageError
from .logging_setup import configure_logging
from .services import LeverageLoop

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="scallop-leverage",
        description="Deposit collateral and borrow against it on Scallop",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Value the position and size the next borrow")

    run_parser = sub.add_parser("run", help="Run deposit → borrow cycles")
    run_parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Number of cycles to run, 0 for unbounded (overrides config)",
    )

    return parser


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable for %s", sig)


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)
    leverage_loop = LeverageLoop(config, stop_event=stop_event)

    if args.command == "status":
        await leverage_loop.status()
    elif args.command == "run":
        await leverage_loop.run(args.iterations)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except (LeverageError, ValueError, FileNotFoundError) as e:
        logger.critical("Fatal: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
