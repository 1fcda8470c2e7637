#!/usr/bin/env python3
"""Command-line entry points over the trade orchestrator"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from .config import settings
from .core.errors import TradeError
from .logging_config import setup_logging
from .runtime import Runtime, build_runtime


def print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def cli_quote(runtime: Runtime, args: argparse.Namespace) -> None:
    preview = await runtime.orchestrator.quote(args.side, args.token, args.amount, args.slippage_bps, user_id=args.user)
    human = preview.to_dict()["humanReadable"]
    print(f"📈 {args.side.upper()} quote via {preview.quote.provider}")
    print(f"   sell {human['sell']}  ->  buy {human['buy']} (min {human['minBuy']})")
    if args.json:
        print_json(preview.to_dict())


async def cli_swap(runtime: Runtime, args: argparse.Namespace) -> None:
    result = await runtime.orchestrator.execute(
        args.side,
        args.user,
        args.token,
        args.amount,
        slippage_bps=args.slippage_bps,
        gas_boost_bps=args.gas_boost_bps,
    )
    print(f"✅ {args.side.upper()} confirmed: {result.tx_hash}")
    if result.approval_tx_hash:
        print(f"   approval: {result.approval_tx_hash}")
    if args.json:
        print_json(result.to_dict())


async def cli_withdraw(runtime: Runtime, args: argparse.Namespace) -> None:
    result = await runtime.orchestrator.withdraw(args.user, args.amount, args.token, args.destination)
    print(f"✅ Sent {result.amount} {result.symbol} to {result.destination}: {result.tx_hash}")


async def cli_new_wallet(runtime: Runtime, args: argparse.Namespace) -> None:
    wallet = await runtime.wallets.ensure_wallet(args.user)
    print(f"👛 {args.user}: {wallet.address}")


COMMANDS = {
    "quote": cli_quote,
    "swap": cli_swap,
    "withdraw": cli_withdraw,
    "new-wallet": cli_new_wallet,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tradebot CLI")
    subparsers = parser.add_subparsers(dest="command")

    quote_parser = subparsers.add_parser("quote", help="Preview a buy or sell")
    quote_parser.add_argument("side", choices=["buy", "sell"])
    quote_parser.add_argument("token", help="Token symbol or address")
    quote_parser.add_argument("amount", help="Stable amount for buys, token amount for sells")
    quote_parser.add_argument("--slippage-bps", type=int, default=None)
    quote_parser.add_argument("--user", default=None, help="Include a gas estimate for this user's wallet")
    quote_parser.add_argument("--json", action="store_true", help="Print the full payload")

    swap_parser = subparsers.add_parser("swap", help="Execute a buy or sell")
    swap_parser.add_argument("side", choices=["buy", "sell"])
    swap_parser.add_argument("user", help="User id owning the wallet")
    swap_parser.add_argument("token", help="Token symbol or address")
    swap_parser.add_argument("amount")
    swap_parser.add_argument("--slippage-bps", type=int, default=None)
    swap_parser.add_argument("--gas-boost-bps", type=int, default=None)
    swap_parser.add_argument("--json", action="store_true", help="Print the full payload")

    withdraw_parser = subparsers.add_parser("withdraw", help="Send ETH or a token out of a wallet")
    withdraw_parser.add_argument("user")
    withdraw_parser.add_argument("amount")
    withdraw_parser.add_argument("token", help="ETH, a symbol or an address")
    withdraw_parser.add_argument("destination")

    wallet_parser = subparsers.add_parser("new-wallet", help="Create (or show) a user's wallet")
    wallet_parser.add_argument("user")

    return parser


async def run(argv: Optional[List[str]] = None, runtime: Optional[Runtime] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    owned = runtime is None
    runtime = runtime or await build_runtime(settings)
    try:
        await COMMANDS[args.command](runtime, args)
    except TradeError as e:
        print(f"❌ {e.user_message}")
        return 2
    finally:
        if owned:
            await runtime.close()
    return 0


def main() -> None:
    setup_logging()
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
