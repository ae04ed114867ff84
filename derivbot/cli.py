"""derivbot CLI entry point."""

from __future__ import annotations

import argparse
import sys


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="derivbot",
        description="Digit-parity reversal trader for Deriv synthetic indices",
    )
    parser.add_argument(
        "symbols",
        nargs="*",
        metavar="SYMBOL",
        help="Instruments to trade, e.g. R_100 1HZ10V (default: trading.symbols)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Consecutive same-parity digits before betting on a reversal (default: trading.threshold)",
    )
    parser.add_argument(
        "--simulation",
        action="store_true",
        default=False,
        help="Draw simulated outcomes instead of buying contracts",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging (every tick is logged)",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        default="config",
        help="Config directory path (default: config)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Environment name (default: from DERIVBOT_ENV)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.threshold is not None and args.threshold <= 0:
        parser.error(f"--threshold must be a positive integer, got {args.threshold}")

    mode = "SIMULATION" if args.simulation else "LIVE"
    targets = ", ".join(s.upper() for s in args.symbols) or "configured instruments"
    print(f"Starting {mode} trading on {targets}")

    from derivbot.bot import run_bot

    return run_bot(
        symbols=args.symbols or None,
        threshold=args.threshold,
        simulation=args.simulation,
        debug=args.debug,
        config_dir=args.config_dir,
        env=args.env,
    )


if __name__ == "__main__":
    sys.exit(main())
