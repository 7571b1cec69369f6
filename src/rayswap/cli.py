"""
rayswap command line.

    rayswap pool <pool_id>                       net base/quote holdings and price
    rayswap swap <pool_id> <amount> <direction>  direction: 0 buy, 1 sell, 11 sell + close

Exit codes: 0 success, 1 swap/summary failed, 2 configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from typing import List, Optional

from loguru import logger

from rayswap import __version__
from rayswap.config.settings import SwapperSettings
from rayswap.errors import ConfigError
from rayswap.service import SwapService
from rayswap.utils.logging_setup import configure_logging


async def _with_service(settings: SwapperSettings, action) -> int:
    service = SwapService.from_settings(settings)
    try:
        return await action(service)
    finally:
        await service.close()


def command_pool(args, settings: SwapperSettings) -> int:
    async def _run(service: SwapService) -> int:
        summary = await service.get_pool_summary(args.pool_id)
        if summary is None:
            return 1
        print(json.dumps(summary.to_dict(), indent=2))
        return 0

    return asyncio.run(_with_service(settings, _run))


def command_swap(args, settings: SwapperSettings) -> int:
    async def _run(service: SwapService) -> int:
        ok = await service.swap(args.pool_id, args.amount, args.direction)
        print(json.dumps({"pool_id": args.pool_id, "direction": args.direction, "ok": ok}))
        return 0 if ok else 1

    return asyncio.run(_with_service(settings, _run))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rayswap",
        description="Raydium AMM v4 swap executor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
    rayswap pool <pool_id>                      Pool summary
    rayswap swap <pool_id> 0.5 0                Buy with 0.5 quote token
    rayswap swap <pool_id> 1000 1               Sell 1000 base token
    rayswap swap <pool_id> 1000 11              Sell and close the token account
        """,
    )
    parser.add_argument("--settings", default="settings.toml", help="Path to settings.toml")
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    parser.add_argument("--simulate", action="store_true", help="Simulate instead of broadcasting (default executor)")
    parser.add_argument("--version", action="version", version=f"rayswap {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    parser_pool = subparsers.add_parser("pool", help="Show net pool holdings")
    parser_pool.add_argument("pool_id")

    parser_swap = subparsers.add_parser("swap", help="Run one swap")
    parser_swap.add_argument("pool_id")
    parser_swap.add_argument("amount", help="Human units: quote token for buys, base token for sells")
    parser_swap.add_argument("direction", type=int, help="0 buy, 1 sell, 11 sell and close")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "pool": command_pool,
        "swap": command_swap,
    }
    if args.command not in commands:
        parser.print_help()
        return 2

    try:
        settings = SwapperSettings.load(settings_path=args.settings)
    except ConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 2

    if args.simulate:
        settings.executor = replace(settings.executor, simulate=True)

    configure_logging(args.log_level or settings.logging.level, settings.logging.file)
    settings.log_summary()

    try:
        return commands[args.command](args, settings)
    except ConfigError as e:
        logger.error(f"FATAL | {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
