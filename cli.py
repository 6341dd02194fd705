#!/usr/bin/env python3
"""Simple CLI for exercising asset resolution and the Koi backend locally"""

import argparse
import asyncio
import sys
from typing import Optional

from monkfish.auth import UserTokenCache
from monkfish.clients import CallerIdentity, KoiGateway
from monkfish.config import settings
from monkfish.errors import AuthError, BackendError, ConfigError
from monkfish.logging_config import setup_logging
from monkfish.providers.dexscreener import DexScreenerProvider
from monkfish.providers.jupiter import JupiterTokenListProvider
from monkfish.services.amounts import parse_positive_amount
from monkfish.services.asset_resolver import AssetResolver, ResolutionFailure, ResolutionReason
from monkfish.services.cooldown import CooldownGate
from monkfish.services.token_directory import TokenDirectory


_FAILURE_HEADERS = {
    ResolutionReason.AMBIGUOUS: "⚠️  Ambiguous asset",
    ResolutionReason.UNKNOWN: "❌ Unknown asset",
    ResolutionReason.INVALID: "❌ Invalid asset format",
    ResolutionReason.BACKEND_ERROR: "❌ Resolution failed",
}


def build_directory() -> TokenDirectory:
    return TokenDirectory(JupiterTokenListProvider(), DexScreenerProvider())


def print_failure(failure: ResolutionFailure) -> None:
    print(_FAILURE_HEADERS[failure.reason])
    print(f"   {failure.message}")
    if failure.suggestions:
        print("   Try one of:")
        for suggestion in failure.suggestions[:5]:
            print(f"   • {suggestion}")


async def cli_resolve(asset: str, offline: bool) -> Optional[str]:
    """Resolve an asset and print the outcome; returns the address on success."""
    directory = build_directory()
    if offline:
        resolver = AssetResolver(directory=directory)
    else:
        resolver = AssetResolver.from_settings(settings, directory=directory)

    result = await resolver.resolve(asset)
    if isinstance(result, ResolutionFailure):
        print_failure(result)
        return None

    print(f"✅ {result.address}")
    if result.chain:
        print(f"   chain: {result.chain}")
    if result.note:
        print(f"   ({result.note})")
    return result.address


async def cli_token(symbol: str) -> None:
    """Look a symbol up in the public token directory and show market data."""
    directory = build_directory()
    address = await directory.resolve_symbol(symbol)
    if not address:
        print(f"❌ {symbol.upper()} not found in token list or market data")
        return

    print(f"{symbol.upper()}: {address}")
    snapshot = await directory.market_snapshot(address)
    if snapshot is None:
        print("   No market data")
        return
    if snapshot.price_usd is not None:
        print(f"   Price:     ${snapshot.price_usd:,.6f}")
    if snapshot.price_native is not None:
        print(f"   Price SOL: {snapshot.price_native:,.9f}")
    if snapshot.liquidity_usd is not None:
        print(f"   Liquidity: ${snapshot.liquidity_usd:,.0f}")


async def cli_quote(asset: str, amount_raw: str, user_id: str) -> None:
    amount = parse_positive_amount(amount_raw)
    if amount is None:
        print("❌ Amount must be a number greater than 0 (max 9 decimals).")
        return

    address = await cli_resolve(asset, offline=False)
    if not address:
        return

    async with KoiGateway(token_cache=UserTokenCache()) as koi:
        quote = await koi.quote(address, amount, CallerIdentity(user_id=user_id))

    print(f"\nQuote for {amount} SOL")
    print(f"   Get:    ~{quote.est_out:,.6f}")
    if quote.impact_pct is not None:
        print(f"   Impact: ~{quote.impact_pct:.2f}%")
    if quote.hops is not None:
        print(f"   Hops:   {quote.hops}")
    if quote.risk and quote.risk.honeypot:
        print("   ⚠️  Flagged as a possible honeypot")


async def cli_wallet(user_id: str) -> None:
    async with KoiGateway() as koi:
        balance = await koi.wallet_balance(CallerIdentity(user_id=user_id))

    if not balance.balances:
        print("No balances")
        return
    for item in balance.balances:
        print(f"{item.amount:>16} {item.symbol:<8} ({item.chain})")


async def cli_algos(user_id: str) -> None:
    identity = CallerIdentity(user_id=user_id)
    async with KoiGateway() as koi:
        algos = await koi.algos_list(identity)
        allocations = await koi.allocations_get(identity)

    enabled = {a.algo_id for a in allocations.allocations}
    for algo in algos.algos:
        marker = "●" if algo.id in enabled else "○"
        print(f"{marker} {algo.id:<16} {algo.name} [{algo.status or 'unknown'}]")


SHELL_HELP = """Commands:
  resolve <asset>          - Resolve an asset
  token <symbol>           - Token directory lookup
  quote <asset> <amount>   - Quote a buy for <amount> SOL
  wallet                   - Wallet balances
  algos                    - Algos and allocations
  exit                     - Quit"""


async def run_shell_command(line: str, user_id: str, gate: CooldownGate) -> bool:
    """Run one shell line; returns False when the shell should stop."""
    words = line.split()
    if not words:
        return True

    action, args = words[0].lower(), words[1:]
    if action in ("exit", "quit", "q"):
        return False
    if action in ("help", "h"):
        print(SHELL_HELP)
        return True

    handlers = {
        "resolve": (1, lambda: cli_resolve(args[0], offline=False)),
        "token": (1, lambda: cli_token(args[0])),
        "quote": (2, lambda: cli_quote(args[0], args[1], user_id)),
        "wallet": (0, lambda: cli_wallet(user_id)),
        "algos": (0, lambda: cli_algos(user_id)),
    }
    if action not in handlers:
        print(f"❓ Unknown command '{action}', type 'help'")
        return True

    arity, handler = handlers[action]
    if len(args) < arity:
        print(f"❓ '{action}' needs {arity} argument(s), type 'help'")
        return True

    if gate.hit(CooldownGate.key_for(user_id, action)):
        print("⏳ Slow down, that command is cooling down")
        return True

    try:
        await handler()
    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
    except BackendError as e:
        print(f"❌ Backend error: {e}")
    return True


async def cli_shell(user_id: str) -> None:
    """Interactive mode acting as one user"""
    print(f"🐟 Monkfish shell (user {user_id})")
    print("Type 'exit' to quit, 'help' for commands")
    print("-" * 40)

    gate = CooldownGate()
    while True:
        try:
            line = input("\n> ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye! 👋")
            break

        if not await run_shell_command(line, user_id, gate):
            print("Goodbye! 👋")
            break


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monkfish asset/backend CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve an asset (symbol, symbol:chain, address)")
    resolve_parser.add_argument("asset", help="Asset input, e.g. usdc, usdc:sol, <mint>")
    resolve_parser.add_argument("--offline", action="store_true", help="Skip the backend registry")

    token_parser = subparsers.add_parser("token", help="Look a symbol up in the public token directory")
    token_parser.add_argument("symbol", help="Token symbol")

    quote_parser = subparsers.add_parser("quote", help="Resolve an asset and request a quote")
    quote_parser.add_argument("asset", help="Asset to buy")
    quote_parser.add_argument("amount", help="Amount of SOL to spend")
    quote_parser.add_argument("--user", required=True, help="Telegram user id to act as")

    wallet_parser = subparsers.add_parser("wallet", help="Show wallet balances")
    wallet_parser.add_argument("--user", required=True, help="Telegram user id to act as")

    algos_parser = subparsers.add_parser("algos", help="List algos and the user's allocations")
    algos_parser.add_argument("--user", required=True, help="Telegram user id to act as")

    shell_parser = subparsers.add_parser("shell", help="Interactive mode")
    shell_parser.add_argument("--user", required=True, help="Telegram user id to act as")

    return parser


async def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "resolve":
            address = await cli_resolve(args.asset, args.offline)
            return 0 if address else 1
        elif args.command == "token":
            await cli_token(args.symbol)
        elif args.command == "quote":
            await cli_quote(args.asset, args.amount, args.user)
        elif args.command == "wallet":
            await cli_wallet(args.user)
        elif args.command == "algos":
            await cli_algos(args.user)
        elif args.command == "shell":
            await cli_shell(args.user)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
        return 2
    except AuthError as e:
        print(f"❌ Could not authenticate with the backend: {e}")
        return 1
    except BackendError as e:
        print(f"❌ Backend error: {e}")
        return 1

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
