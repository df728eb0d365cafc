#!/usr/bin/env python3
"""
Concentrated Liquidity Math Engine
==================================

Exact Q96 fixed-point math for reading concentrated-liquidity positions
(Uniswap V3 and its Algebra-based forks such as KittenSwap).

Two deliberately separate paths:

  • EXACT   — token amounts. Arbitrary-precision integers only:
              TickMath.sqrt_ratio_at_tick → LiquidityAmounts.*
  • DISPLAY — human prices (priceLower / priceUpper / priceCurrent).
              Floating point p(i) = 1.0001^i × 10^(d0 − d1).

Amount correctness never depends on the floating-point path.

FORMULA SOURCES:
────────────────
1. Uniswap V3 Core — TickMath.getSqrtRatioAtTick
   https://github.com/Uniswap/v3-core/blob/main/contracts/libraries/TickMath.sol
   Bit decomposition of |tick| over 19 precomputed Q128 constants
   (each = 2^128 / √1.0001^(2^k)), inverted for positive ticks, then
   Q128 → Q96 with round-up on a non-zero remainder.

2. Uniswap V3 Periphery — LiquidityAmounts
   https://github.com/Uniswap/v3-periphery/blob/main/contracts/libraries/LiquidityAmounts.sol
   amount0 = L·2^96·(√B − √A) / √B / √A
   amount1 = L·(√B − √A) / 2^96

3. Uniswap V3 Whitepaper §6.1 — p(i) = 1.0001^i
   https://uniswap.org/whitepaper-v3.pdf
"""

import math
from decimal import Decimal
from typing import Optional, Tuple

# ── Fixed-Point Constants ────────────────────────────────────────────────

Q96 = 1 << 96                 # FixedPoint96.RESOLUTION
Q128 = 1 << 128
MAX_UINT128 = (1 << 128) - 1
MAX_UINT256 = (1 << 256) - 1

MIN_TICK = -887272            # TickMath.MIN_TICK
MAX_TICK = 887272             # TickMath.MAX_TICK
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# Positions whose ticks exceed this are treated as a field-layout mismatch.
PLAUSIBLE_TICK_BOUND = 3_000_000

# Reward pricing accepts a rate only inside (1e-12, 1e12).
PLAUSIBLE_RATE_MIN = 1e-12
PLAUSIBLE_RATE_MAX = 1e12

# (bit of |tick|, Q128 multiplier); bit 0x1 seeds the accumulator instead.
_SQRT_RATIO_MAGIC: Tuple[Tuple[int, int], ...] = (
    (0x2, 0xfff97272373d413259a46990580e213a),
    (0x4, 0xfff2e50f5f656932ef12357cf3c7fdcc),
    (0x8, 0xffe5caca7e10e4e61c3624eaa0941cd0),
    (0x10, 0xffcb9843d60f6159c9db58835c926644),
    (0x20, 0xff973b41fa98c081472e6896dfb254c0),
    (0x40, 0xff2ea16466c96a3843ec78b326b52861),
    (0x80, 0xfe5dee046a99a2a811c461f1969c3053),
    (0x100, 0xfcbe86c7900a88aedcffc83b479aa3a4),
    (0x200, 0xf987a7253ac413176f2b074cf7815e54),
    (0x400, 0xf3392b0822b70005940c7a398e4b70f3),
    (0x800, 0xe7159475a2c29b7443b29c7fa6e889d9),
    (0x1000, 0xd097f3bdfd2022b8845ad8f792aa5825),
    (0x2000, 0xa9f746462d870fdf8a65dc1f90e061e5),
    (0x4000, 0x70d869a156d2a1b890bb3df62baf32f7),
    (0x8000, 0x31be135f97d08fd981231505542fcfa6),
    (0x10000, 0x9aa508b5b7a84e1c677de54f3e99bc9),
    (0x20000, 0x5d6af8dedb81196699c329225ee604),
    (0x40000, 0x2216e584f5fa1ea926041bedfe98),
    (0x80000, 0x48a170391f7dc42444e8fa2),
)


# ── Exact Path ───────────────────────────────────────────────────────────


class TickMath:
    """Tick ↔ sqrt-price conversion, bit-for-bit with TickMath.sol."""

    @staticmethod
    def sqrt_ratio_at_tick(tick: int) -> int:
        """
        √(1.0001^tick) × 2^96, rounded up.

        Raises:
            ValueError: if |tick| > MAX_TICK (the constants above only
                        cover 20 bits of the tick).
        """
        abs_tick = -tick if tick < 0 else tick
        if abs_tick > MAX_TICK:
            raise ValueError(f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]")

        if abs_tick & 0x1:
            ratio = 0xfffcb933bd6fad37aa2d162d1a594001
        else:
            ratio = Q128
        for bit, magic in _SQRT_RATIO_MAGIC:
            if abs_tick & bit:
                ratio = (ratio * magic) >> 128

        if tick > 0:
            ratio = MAX_UINT256 // ratio

        # Q128.128 → Q64.96, rounding up
        return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


class LiquidityAmounts:
    """Liquidity ↔ token amount conversions (LiquidityAmounts.sol)."""

    @staticmethod
    def amount0_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
        """amount0 = L·2^96·(√B − √A) / √B / √A  (arguments may be unordered)."""
        if sqrt_a > sqrt_b:
            sqrt_a, sqrt_b = sqrt_b, sqrt_a
        if sqrt_a == 0:
            raise ValueError("sqrt price must be positive")
        return ((liquidity << 96) * (sqrt_b - sqrt_a) // sqrt_b) // sqrt_a

    @staticmethod
    def amount1_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
        """amount1 = L·(√B − √A) / 2^96  (arguments may be unordered)."""
        if sqrt_a > sqrt_b:
            sqrt_a, sqrt_b = sqrt_b, sqrt_a
        return liquidity * (sqrt_b - sqrt_a) // Q96

    @staticmethod
    def amounts_from_liquidity(
        liquidity: int, current_tick: int, tick_lower: int, tick_upper: int
    ) -> Tuple[int, int]:
        """
        Raw (amount0, amount1) a position would withdraw at current_tick.

          Below range (P ≤ A):  all token0
          In range   (A < P < B): token0 from P→B, token1 from A→P
          Above range (P ≥ B):  all token1
        """
        if liquidity == 0:
            return 0, 0

        sqrt_p = TickMath.sqrt_ratio_at_tick(current_tick)
        sqrt_a = TickMath.sqrt_ratio_at_tick(min(tick_lower, tick_upper))
        sqrt_b = TickMath.sqrt_ratio_at_tick(max(tick_lower, tick_upper))

        if sqrt_p <= sqrt_a:
            return LiquidityAmounts.amount0_for_liquidity(sqrt_a, sqrt_b, liquidity), 0
        if sqrt_p < sqrt_b:
            return (
                LiquidityAmounts.amount0_for_liquidity(sqrt_p, sqrt_b, liquidity),
                LiquidityAmounts.amount1_for_liquidity(sqrt_a, sqrt_p, liquidity),
            )
        return 0, LiquidityAmounts.amount1_for_liquidity(sqrt_a, sqrt_b, liquidity)


def is_plausible_position(tick_lower: int, tick_upper: int, liquidity: int,
                          allow_empty: bool = False) -> bool:
    """Tick / liquidity sanity check used to choose a positions() field layout."""
    if abs(tick_lower) >= PLAUSIBLE_TICK_BOUND or abs(tick_upper) >= PLAUSIBLE_TICK_BOUND:
        return False
    if liquidity > MAX_UINT128 or liquidity < 0:
        return False
    return allow_empty or liquidity > 0


# ── Unit Scaling ─────────────────────────────────────────────────────────


def format_units(raw: int, decimals: int) -> float:
    """Raw integer amount → human units, dividing exactly before going to float."""
    return float(Decimal(raw) / (Decimal(10) ** decimals))


def clamp_precision(value: float) -> float:
    """Display clamp: 6 decimals, or 5 significant digits from 1e9 upward."""
    if value is None or not math.isfinite(value):
        return 0.0
    if abs(value) >= 1e9:
        return float(f"{value:.4e}")
    return round(value, 6)


# ── Display Path ─────────────────────────────────────────────────────────


def tick_to_price(tick: int, decimals0: int, decimals1: int) -> float:
    """
    Human price of token0 in token1 (token1 per token0).

    Formula (Whitepaper §6.1):
      p(i) = 1.0001^i × 10^(decimals0 − decimals1)
    """
    try:
        raw_price = 1.0001 ** tick
    except OverflowError:
        return math.inf
    return raw_price * (10 ** (decimals0 - decimals1))


def is_plausible_rate(rate: Optional[float]) -> bool:
    """True when a derived exchange rate is finite and away from the extremes."""
    return (
        rate is not None
        and math.isfinite(rate)
        and PLAUSIBLE_RATE_MIN < rate < PLAUSIBLE_RATE_MAX
    )
