#!/usr/bin/env python3
"""
LP Dashboard -- KittenSwap Position Reader
==========================================

Reads concentrated-liquidity LP positions for a wallet straight from
HyperEVM (no indexer, no API key) and values them in USD.

Usage:
  python run.py list     <wallet>            All positions of a wallet
  python run.py list     <wallet> --json     Same, as the JSON response envelope
  python run.py position <tokenId>           Resolve a single position NFT
  python run.py price                        Reward token price (KITTEN in USD0)
  python run.py extract  <wallet>            Fallback: Hyperliquid info API
  python run.py info                         Deployment + configuration overview

Configuration is read from the environment (a local .env file is loaded
first): HYPEREVM_RPC, HTTPS_PROXY, NO_PROXY, KITTEN_TOKEN, USD0_TOKEN,
START_BLOCK, CHUNK_SPAN, RPC_TIMEOUT, POSITION_CONCURRENCY,
HYPERLIQUID_INFO_URL.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# ── Imports ───────────────────────────────────────────────────────────────

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from lp_dashboard.central_config import PROJECT_NAME, PROJECT_VERSION  # noqa: E402
from lp_dashboard.commands import (  # noqa: E402
    cmd_extract,
    cmd_info,
    cmd_list,
    cmd_position,
    cmd_price,
)


# ── CLI Parser ────────────────────────────────────────────────────────────


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lp-dashboard",
        description=f"{PROJECT_NAME} v{PROJECT_VERSION} — on-chain LP position reader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py list 0xWALLET                   Table of positions + diagnostics
  python run.py list 0xWALLET --json            Response envelope as JSON
  python run.py position 42                     One position NFT
  python run.py price                           KITTEN price (needs KITTEN_TOKEN, USD0_TOKEN)
  python run.py extract 0xWALLET                Hyperliquid info API fallback
  python run.py -v list 0xWALLET                Debug logging (every RPC call)
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"{PROJECT_NAME} v{PROJECT_VERSION}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    list_p = sub.add_parser("list", help="List all LP positions for a wallet")
    list_p.add_argument("wallet", help="Wallet address (0x…)")
    list_p.add_argument("--json", action="store_true", help="Print the JSON envelope")

    pos_p = sub.add_parser("position", help="Resolve a single position NFT")
    pos_p.add_argument("token_id", type=int, help="Position NFT tokenId")
    pos_p.add_argument("--json", action="store_true", help="Print the position as JSON")

    sub.add_parser("price", help="Reward token price in the stable token")

    extract_p = sub.add_parser("extract", help="Positions from the Hyperliquid info API")
    extract_p.add_argument("wallet", help="Wallet address (0x…)")
    extract_p.add_argument("--json", action="store_true", help="Print the JSON envelope")

    sub.add_parser("info", help="Deployment & configuration info")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "info":
            return cmd_info()
        if args.command == "list":
            return asyncio.run(cmd_list(args.wallet, as_json=args.json))
        if args.command == "position":
            return asyncio.run(cmd_position(args.token_id, as_json=args.json))
        if args.command == "price":
            return asyncio.run(cmd_price())
        if args.command == "extract":
            return asyncio.run(cmd_extract(args.wallet, as_json=args.json))
    except ValueError as exc:
        # Raised by DeploymentConfig.from_env for malformed numeric variables
        print(f"❌ Configuration error: {exc}")
        return 2

    parser.print_help()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
