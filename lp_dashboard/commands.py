"""
LP Dashboard — Command Implementations
======================================

All CLI command handlers live here, keeping run.py as a thin
argparse dispatcher. Each public function corresponds to a
subcommand (info, list, position, price, extract) and returns
the process exit code.
"""

from __future__ import annotations

import json
import re

from lp_dashboard.central_config import PROJECT_NAME, PROJECT_VERSION, DeploymentConfig
from lp_dashboard.errors import DataSourceError, PoolNotFoundError, PositionDecodeError, RpcError

WALLET_RE = r"0x[0-9a-fA-F]{40}"


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _print_attempts(attempts) -> None:
    print("\n  🔎 Diagnostics:")
    for a in attempts:
        mark = "✅" if a.success else "⚠️ "
        text = " — ".join(part for part in (a.details, a.error) if part)
        print(f"     {mark} {a.step}: {text}")


def _print_position(i: int, p) -> None:
    status = "🟢 Active" if p.is_active else "⚪ Closed"
    rng = "In Range" if p.in_range else "OUT OF RANGE"
    print(f"\n    {i}. {p.pool_name}")
    print(f"       Status   : {status} | {rng}")
    print(f"       Ticks    : [{p.tick_lower}, {p.tick_upper}]")
    print(f"       Price    : {p.price_current} ({p.price_lower} – {p.price_upper})")
    for symbol, amount in p.token_amounts.items():
        print(f"       {symbol:<9}: {amount}")
    print(f"       Value    : ${p.total_value_usd:,.2f}")
    if p.accrued_fees_usd is not None:
        print(f"       Fees     : ${p.accrued_fees_usd:,.2f}")
    if p.reward_kitten is not None:
        usd = f" (~${p.reward_kitten_usd:,.2f})" if p.reward_kitten_usd else ""
        print(f"       Rewards  : {p.reward_kitten}{usd}")


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_info(config: DeploymentConfig | None = None) -> int:
    """Display deployment and architecture information."""
    from lp_dashboard.dex_registry import DEFAULT_DEX, get_dex_display_name, get_dex_icon

    config = config or DeploymentConfig.from_env()
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print(f"{get_dex_icon(DEFAULT_DEX)} DEX          : {get_dex_display_name(DEFAULT_DEX)} (Algebra concentrated liquidity)")
    print(f"🌐 RPC          : {config.rpc_url}")
    print(f"📜 Positions    : {config.position_manager}")
    print(f"🏭 Factory      : {config.factory}")
    print(f"🌾 Farming      : {config.farming_center}")
    print(f"🔀 Proxy        : {config.proxy_url or 'direct'}")
    print(f"🧱 Log scan     : from block {config.start_block}, span {config.chunk_span}")
    print(f"⚡ Concurrency  : {config.max_concurrency}")
    reward = "enabled" if config.reward_pricing_enabled else "disabled (set KITTEN_TOKEN, USD0_TOKEN)"
    print(f"🐱 Reward price : {reward}")
    print(f"📡 Fallback     : {config.info_url}")
    print()
    print("📁 Files:")
    print("   run.py                — CLI entry point")
    print("   position_indexer.py   — wallet → token ids (enumeration, log scan)")
    print("   position_reader.py    — token id → position (layout, pool, valuation)")
    print("   reward_pricing.py     — reward token price back-fill")
    print("   real_defi_math.py     — TickMath / LiquidityAmounts (exact Q96)")
    print("   lp_dashboard/         — RPC client, config, models, API, extractor")
    print()
    print("🔗 Quick Start:")
    print("   python run.py list     0xWALLET")
    print("   python run.py position 42")
    print("   python run.py price")
    print("   python run.py extract  0xWALLET")
    return 0


async def cmd_list(wallet: str, as_json: bool = False, config: DeploymentConfig | None = None) -> int:
    """Full on-chain fetch for a wallet."""
    from lp_dashboard.api import fetch_onchain_positions

    if not wallet or not re.fullmatch(WALLET_RE, wallet.strip()):
        print("❌ Invalid wallet address. Must be 42 hex characters starting with 0x.")
        return 2

    config = config or DeploymentConfig.from_env()
    if not as_json:
        print(f"\n🔄 Scanning LP positions on {config.rpc_url}...")
    try:
        result = await fetch_onchain_positions(wallet, config)
    except RpcError as exc:
        print(f"❌ RPC unreachable: {exc}")
        return 1

    if as_json:
        _print_json(result.to_dict())
        return 0

    print(f"\n{'=' * 65}")
    print(f"  👛 Wallet: {wallet}")
    print(f"  📡 Source: {result.source}")
    print(f"{'=' * 65}")
    if not result.positions:
        print("  No positions decoded.")
    for i, p in enumerate(result.positions, 1):
        _print_position(i, p)

    total = sum(p.total_value_usd for p in result.positions)
    active = sum(1 for p in result.positions if p.is_active)
    print(f"\n{'=' * 65}")
    print(f"  Total: {len(result.positions)} positions ({active} active) — ${total:,.2f}")
    if result.meta.kitten_usd is not None:
        print(f"  🐱 Reward price: {result.meta.kitten_usd} | fees {result.meta.total_kitten_fees}"
              f" (~${result.meta.total_kitten_fees_usd or 0:,.2f})")
    print(f"{'=' * 65}")
    _print_attempts(result.attempts)
    return 0


async def cmd_position(token_id: int, as_json: bool = False, config: DeploymentConfig | None = None) -> int:
    """Resolve a single token id."""
    from lp_dashboard.rpc_helpers import RpcClient
    from position_reader import PositionReader

    if token_id < 0:
        print(f"❌ Token id must be non-negative, got {token_id}")
        return 2

    config = config or DeploymentConfig.from_env()
    try:
        async with RpcClient.from_config(config) as rpc:
            position = await PositionReader(rpc, config).read_position(token_id)
    except (RpcError, PoolNotFoundError, PositionDecodeError) as exc:
        print(f"❌ Position #{token_id}: {exc}")
        return 1

    if as_json:
        _print_json(position.to_dict())
    else:
        _print_position(1, position)
    return 0


async def cmd_price(config: DeploymentConfig | None = None) -> int:
    """Reward token price in the stable settlement token."""
    from lp_dashboard.rpc_helpers import RpcClient
    from reward_pricing import RewardPricer

    config = config or DeploymentConfig.from_env()
    if not config.reward_pricing_enabled:
        print("⚠️  Reward pricing disabled — set KITTEN_TOKEN and USD0_TOKEN.")
        return 1

    async with RpcClient.from_config(config) as rpc:
        rate = await RewardPricer(rpc, config).fetch_rate()
    if rate is None:
        print(f"⚠️  No plausible {config.reward_symbol} price found.")
        return 1
    print(f"🐱 1 {config.reward_symbol} ≈ {rate:.6g} USD0")
    return 0


async def cmd_extract(wallet: str, as_json: bool = False, config: DeploymentConfig | None = None) -> int:
    """Positions from the Hyperliquid info API (fallback path)."""
    from lp_dashboard.api import fetch_fallback_positions

    if not wallet or not re.fullmatch(WALLET_RE, wallet.strip()):
        print("❌ Invalid wallet address. Must be 42 hex characters starting with 0x.")
        return 2

    try:
        result = await fetch_fallback_positions(wallet, config)
    except DataSourceError as exc:
        print(f"❌ Failed to fetch Hyperliquid data: {exc}")
        return 1

    if as_json:
        _print_json(result.to_dict())
        return 0

    print(f"\n📡 {result.source} — {len(result.positions)} record(s)")
    for i, p in enumerate(result.positions, 1):
        amounts = ", ".join(f"{k} {v}" for k, v in p.token_amounts.items())
        print(f"    {i}. {p.pool_name:<20} ${p.total_value_usd:,.2f}  {amounts}")
    return 0
