#!/usr/bin/env python3
"""
DEX Registry — Algebra / V3 Contract Address Configuration
==========================================================

Maps each supported DEX deployment to the contracts the position engine
reads: the NonfungiblePositionManager (position NFTs), the factory
(canonical pool-by-pair lookup), the farming center (per-token deposit
records that point at the staked pool) and the default RPC endpoint.

Structure:
    DEX_REGISTRY[dex_slug] = {
        "name": str,                   # Display name
        "icon": str,                   # Emoji for CLI
        "reward_symbol": str,          # Emission token ticker
        "networks": {
            "network_slug": {
                "rpc_url": "https://...",
                "position_manager": "0x...",
                "factory": "0x...",
                "farming_center": "0x...",
            }
        }
    }
"""

from typing import Dict, Optional

DEFAULT_DEX = "kittenswap"
DEFAULT_NETWORK = "hyperevm"

DEX_REGISTRY: Dict[str, dict] = {
    # ── KittenSwap (Algebra Integral fork) ───────────────────────────
    # positions() may carry an extra pool/deployer word depending on
    # the periphery version; position_reader.py handles both layouts.
    "kittenswap": {
        "name": "KittenSwap",
        "icon": "🐱",
        "reward_symbol": "KITTEN",
        "networks": {
            "hyperevm": {
                "rpc_url": "https://rpc.hyperliquid.xyz/evm",
                "position_manager": "0x9ea4459c8DefBF561495d95414b9CF1E2242a3E2",
                "factory": "0x5f95E92c338e6453111Fc55ee66D4AafccE661A7",
                "farming_center": "0x211BD8917d433B7cC1F4497AbA906554Ab6ee479",
            },
        },
    },
}


def get_deployment(dex_slug: str = DEFAULT_DEX, network: str = DEFAULT_NETWORK) -> Optional[dict]:
    """Contract addresses + RPC for one DEX on one network, or None."""
    dex = DEX_REGISTRY.get(dex_slug)
    if not dex or network not in dex.get("networks", {}):
        return None
    return dict(dex["networks"][network])


def get_dex_display_name(dex_slug: str) -> str:
    """Get display name for a DEX slug."""
    dex = DEX_REGISTRY.get(dex_slug)
    return dex["name"] if dex else dex_slug


def get_dex_icon(dex_slug: str) -> str:
    """Get emoji icon for a DEX slug."""
    dex = DEX_REGISTRY.get(dex_slug)
    return dex["icon"] if dex else "🔄"
