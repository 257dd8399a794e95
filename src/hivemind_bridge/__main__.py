"""Entry point for driving a HiveMind worker from the command line.

Starts a worker, forwards any given moves, asks for one decision and prints
it as JSON on stdout. Logs go to stderr.

Usage:
    python -m hivemind_bridge --first
    python -m hivemind_bridge --second --move '{"from":"A1","to":"B2"}'
    hivemind-bridge --executable ./HiveMind --delay 2 --max-wait 10

Environment Variables:
    See hivemind_bridge.config; command-line options take precedence.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from hivemind_bridge.bridge import HiveMindBridge
from hivemind_bridge.config import BridgeConfig
from hivemind_bridge.errors import BridgeError
from hivemind_bridge.models import Movement, decode_movement, encode_movement

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="hivemind-bridge",
        description="Ask a HiveMind worker for a move over its stdin/stdout protocol.",
    )
    side = parser.add_mutually_exclusive_group()
    side.add_argument(
        "--first",
        dest="is_first",
        action="store_true",
        default=True,
        help="The worker's side moves first (default)",
    )
    side.add_argument(
        "--second",
        dest="is_first",
        action="store_false",
        help="The worker's side moves second",
    )
    parser.add_argument("--executable", help="Path to the worker executable")
    parser.add_argument(
        "--delay",
        type=float,
        dest="response_delay",
        help=(
            "Seconds to wait after 'play' before reading output; raises a "
            "shorter HIVEMIND_MAX_WAIT to match"
        ),
    )
    parser.add_argument(
        "--max-wait",
        type=float,
        dest="max_wait",
        help="Keep polling for a response until this many seconds after 'play'",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level",
    )
    parser.add_argument(
        "--move",
        dest="moves",
        action="append",
        default=[],
        metavar="JSON",
        help="Move to forward before asking for a decision (repeatable)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> BridgeConfig:
    """Build a config from the environment, overridden by explicit options."""
    overrides: dict[str, Any] = {
        key: value
        for key, value in {
            "executable": args.executable,
            "response_delay": args.response_delay,
            "max_wait": args.max_wait,
            "log_level": args.log_level,
        }.items()
        if value is not None
    }
    if args.response_delay is not None and args.max_wait is None:
        # An explicit delay lifts a shorter polling budget from the environment
        base = BridgeConfig(
            **{key: value for key, value in overrides.items() if key != "response_delay"}
        )
        if base.max_wait is not None and base.max_wait < args.response_delay:
            overrides["max_wait"] = args.response_delay
    return BridgeConfig(**overrides)


async def run_session(
    config: BridgeConfig, is_first: bool, moves: Sequence[Movement]
) -> Movement:
    """Run one bridge conversation and return the worker's decision."""
    async with HiveMindBridge.start(is_first, config) as bridge:
        logger.info("Worker started with PID %d", bridge.pid)
        for move in moves:
            await bridge.apply_move(move)
        return await bridge.request_decision()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    config.setup_logging()
    logger.debug("Configuration: %s", config.to_dict())

    try:
        moves = [decode_movement(raw) for raw in args.moves]
        decision = asyncio.run(run_session(config, args.is_first, moves))
    except BridgeError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1

    print(encode_movement(decision))
    return 0


if __name__ == "__main__":
    sys.exit(main())
