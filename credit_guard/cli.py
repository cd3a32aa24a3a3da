"""Command-line interface for the credit guard."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .ledger import LedgerClient
from .logging_setup import configure_logging
from .services import Monitor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="credit-guard",
        description="Risk controller for collateralized credit positions",
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

    sub.add_parser("check", help="Check every position once and raise alerts")
    crank_parser = sub.add_parser("crank", help="Run one GAD crank for every position")
    crank_parser.add_argument(
        "--keeper",
        default=None,
        help="Account credited with the keeper reward for executed steps",
    )
    sub.add_parser("configure", help="Push agent and GAD settings to the ledger")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in seconds (overrides config)",
    )

    return parser


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command; returns the process exit code."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = Monitor(config, LedgerClient(config.ledger))

    if args.command == "check":
        results = await monitor.check_all()
        return 0 if len(results) == len(monitor.owners) else 1
    if args.command == "crank":
        results = await monitor.crank_all(args.keeper)
        for owner, result in results.items():
            logger.info("GAD %s: %s", owner, result.message)
        return 0 if len(results) == len(monitor.owners) else 1
    if args.command == "configure":
        await monitor.apply_settings()
        return 0
    if args.command == "monitor":
        await monitor.run_continuous(args.interval)
        return 0

    build_parser().print_help()
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
