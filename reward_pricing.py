#!/usr/bin/env python3
"""
Reward Pricing — KITTEN → USD back-fill
=======================================

Post-pass over resolved positions:

  1. Find the reward/stable pool via Factory.poolByPair (both orders).
  2. Read its tick and both tokens' decimals (no guessing: an
     unreadable decimals() means no price).
  3. Derive stable-per-reward from the tick, trying both orientations:
       direct   = 1.0001^tick × 10^(dR − dS)          (reward is token0)
       inverted = 1 / (1.0001^tick × 10^(dS − dR))    (stable is token0)
     The first one inside (1e-12, 1e12) wins. Neither → no price.
  4. Fill rewardKittenUsd where it is unset or zero, total the reward
     fees across positions, and record one `kitten-fees-total` attempt.

The orientation is guessed from magnitude alone; tokens whose decimals
or price make both readings plausible will resolve to the direct one.

A missing price is never an error; the USD fields just stay None.
"""

import asyncio
import logging
from typing import List, Optional

from lp_dashboard.central_config import DeploymentConfig
from lp_dashboard.errors import PoolNotFoundError, PositionDecodeError, RpcError
from lp_dashboard.models import AttemptLog, FetchMeta, Position
from lp_dashboard.rpc_helpers import RpcClient
from position_reader import PositionReader
from real_defi_math import clamp_precision, is_plausible_rate, tick_to_price

logger = logging.getLogger(__name__)


def derive_reward_rate(tick: int, reward_decimals: int, stable_decimals: int) -> Optional[float]:
    """Stable tokens per reward token implied by a pool tick, or None."""
    direct = tick_to_price(tick, reward_decimals, stable_decimals)
    if is_plausible_rate(direct):
        return direct

    reverse = tick_to_price(tick, stable_decimals, reward_decimals)
    if is_plausible_rate(reverse):
        return 1 / reverse
    return None


def reward_fee_amount(position: Position, reward_symbol: str) -> float:
    """Accrued reward-token fees of one position (plain ticker first, then wrapped)."""
    fees = position.accrued_fees_tokens
    symbol = reward_symbol.upper()
    value = fees.get(symbol)
    if value is None:
        value = fees.get(f"W{symbol}")
    return value or 0.0


class RewardPricer:
    """
    Prices the reward token in the stable settlement token.

    Usage:
        pricer = RewardPricer(rpc, config)
        meta = await pricer.apply(positions, attempts)
    """

    def __init__(self, rpc: RpcClient, config: DeploymentConfig):
        self.config = config
        self.reader = PositionReader(rpc, config)

    async def fetch_rate(self) -> Optional[float]:
        """Stable per reward token, or None when unconfigured or unavailable."""
        if not self.config.reward_pricing_enabled:
            return None
        reward, stable = self.config.reward_token, self.config.stable_token
        try:
            pool = await self.reader.find_pool(reward, stable)
            state = await self.reader.read_pool_state(pool)
        except (PoolNotFoundError, PositionDecodeError, RpcError, ValueError) as exc:
            logger.info("No %s price: %s", self.config.reward_symbol, exc)
            return None

        reward_decimals = await self.reader.fetch_decimals(reward)
        stable_decimals = await self.reader.fetch_decimals(stable)
        if reward_decimals is None or stable_decimals is None:
            logger.info("No %s price: token decimals unreadable", self.config.reward_symbol)
            return None
        rate = derive_reward_rate(state.current_tick, reward_decimals, stable_decimals)
        if rate is None:
            logger.info("Tick %d of %s gives no plausible rate", state.current_tick, pool)
        return rate

    async def apply(self, positions: List[Position], attempts: List[AttemptLog]) -> FetchMeta:
        """Back-fill reward USD values in place and return the aggregate meta."""
        rate = await self.fetch_rate()
        symbol = self.config.reward_symbol.upper()

        total_fees = 0.0
        total_usd = 0.0
        for position in positions:
            fees = reward_fee_amount(position, symbol)
            total_fees += fees
            if rate is None:
                continue
            total_usd += fees * rate
            if position.reward_kitten is not None and not position.reward_kitten_usd:
                position.reward_kitten_usd = clamp_precision(position.reward_kitten * rate)

        approx = clamp_precision(total_usd) if rate is not None else "n/a"
        attempts.append(AttemptLog(
            step="kitten-fees-total",
            success=True,
            details=(
                f"{symbol} fees total: {clamp_precision(total_fees)} (~{approx}) "
                f"at price {rate if rate is not None else 'unknown'} USD0/{symbol}"
            ),
        ))
        return FetchMeta(
            kitten_usd=rate,
            total_kitten_fees=clamp_precision(total_fees),
            total_kitten_fees_usd=clamp_precision(total_usd) if rate is not None else None,
        )


# ── Standalone CLI ──────────────────────────────────────────────────────


async def _main() -> Optional[float]:
    config = DeploymentConfig.from_env()
    if not config.reward_pricing_enabled:
        print("  ⚠️  Set KITTEN_TOKEN and USD0_TOKEN to enable reward pricing")
        return None
    async with RpcClient.from_config(config) as rpc:
        rate = await RewardPricer(rpc, config).fetch_rate()
    print(f"  {config.reward_symbol}: {rate if rate is not None else 'no price'} USD0")
    return rate


if __name__ == "__main__":
    asyncio.run(_main())
