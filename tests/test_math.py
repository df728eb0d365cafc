"""
Test Suite — Concentrated Liquidity Math
========================================

Checks real_defi_math.py against TickMath.sol reference outputs and
against the closed-form float formulas of the whitepaper.

Formula Sources:
  - Uniswap V3 Core TickMath.getSqrtRatioAtTick
  - Uniswap V3 Periphery LiquidityAmounts
  - Uniswap V3 Whitepaper §6.1, §6.2

Run:  python -m pytest tests/test_math.py -v
"""

import math

import pytest

from real_defi_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MAX_UINT128,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
    LiquidityAmounts,
    TickMath,
    clamp_precision,
    format_units,
    is_plausible_position,
    is_plausible_rate,
    tick_to_price,
)


# ── Helpers ──────────────────────────────────────────────────────────────

def float_sqrt_ratio(tick: int) -> float:
    """Reference: √(1.0001^tick) × 2^96 in floating point."""
    return math.sqrt(1.0001 ** tick) * Q96


def rel_err(a: float, b: float) -> float:
    return abs(a - b) / abs(b)


# ── TickMath (exact) ─────────────────────────────────────────────────────

class TestSqrtRatioAtTick:

    def test_tick_zero_is_q96(self):
        assert TickMath.sqrt_ratio_at_tick(0) == Q96

    def test_min_tick(self):
        assert TickMath.sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO

    def test_max_tick(self):
        assert TickMath.sqrt_ratio_at_tick(MAX_TICK) == MAX_SQRT_RATIO

    @pytest.mark.parametrize("tick", [1, -1, 10, -10, 100, -100, 887, 5000, -5000, 60000, -200000, 400000])
    def test_matches_float_formula(self, tick: int):
        assert rel_err(TickMath.sqrt_ratio_at_tick(tick), float_sqrt_ratio(tick)) < 1e-9

    @pytest.mark.parametrize("tick", [-887272, -100000, -1, 0, 1, 100000])
    def test_strictly_increasing(self, tick: int):
        assert TickMath.sqrt_ratio_at_tick(tick) < TickMath.sqrt_ratio_at_tick(tick + 1)

    @pytest.mark.parametrize("tick", [MAX_TICK + 1, MIN_TICK - 1, 3_000_000])
    def test_out_of_range_raises(self, tick: int):
        with pytest.raises(ValueError):
            TickMath.sqrt_ratio_at_tick(tick)

    def test_symmetry(self):
        """√p(i) · √p(−i) ≈ 2^192 (reciprocal prices)."""
        for tick in (1, 500, 12345):
            product = TickMath.sqrt_ratio_at_tick(tick) * TickMath.sqrt_ratio_at_tick(-tick)
            assert rel_err(product, Q96 * Q96) < 1e-12


# ── LiquidityAmounts (exact) ─────────────────────────────────────────────

class TestLiquidityAmounts:
    L = 10 ** 21

    def test_in_range_matches_whitepaper(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(self.L, 0, -100, 100)
        sqrt_u = math.sqrt(1.0001 ** 100)
        sqrt_l = math.sqrt(1.0001 ** -100)
        assert rel_err(amount0, self.L * (1 - 1 / sqrt_u)) < 1e-9
        assert rel_err(amount1, self.L * (1 - sqrt_l)) < 1e-9

    def test_symmetric_range_at_tick_zero_is_balanced(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(self.L, 0, -100, 100)
        assert rel_err(amount0, amount1) < 1e-3

    def test_below_range_all_token0(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(self.L, -500, -100, 100)
        assert amount0 > 0
        assert amount1 == 0

    def test_above_range_all_token1(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(self.L, 500, -100, 100)
        assert amount0 == 0
        assert amount1 > 0

    def test_at_lower_bound_all_token0(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(self.L, -100, -100, 100)
        full0, _ = LiquidityAmounts.amounts_from_liquidity(self.L, -1000, -100, 100)
        assert (amount0, amount1) == (full0, 0)

    def test_at_upper_bound_all_token1(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(self.L, 100, -100, 100)
        _, full1 = LiquidityAmounts.amounts_from_liquidity(self.L, 1000, -100, 100)
        assert (amount0, amount1) == (0, full1)

    def test_zero_liquidity(self):
        assert LiquidityAmounts.amounts_from_liquidity(0, 0, -100, 100) == (0, 0)

    def test_unordered_ticks(self):
        assert (LiquidityAmounts.amounts_from_liquidity(self.L, 0, 100, -100)
                == LiquidityAmounts.amounts_from_liquidity(self.L, 0, -100, 100))

    def test_unordered_sqrt_args(self):
        a = TickMath.sqrt_ratio_at_tick(-60)
        b = TickMath.sqrt_ratio_at_tick(60)
        assert (LiquidityAmounts.amount0_for_liquidity(a, b, self.L)
                == LiquidityAmounts.amount0_for_liquidity(b, a, self.L))
        assert (LiquidityAmounts.amount1_for_liquidity(a, b, self.L)
                == LiquidityAmounts.amount1_for_liquidity(b, a, self.L))

    def test_amount1_formula_exact(self):
        a = TickMath.sqrt_ratio_at_tick(-60)
        b = TickMath.sqrt_ratio_at_tick(60)
        assert LiquidityAmounts.amount1_for_liquidity(a, b, self.L) == self.L * (b - a) // Q96

    def test_amount0_formula_exact(self):
        a = TickMath.sqrt_ratio_at_tick(-60)
        b = TickMath.sqrt_ratio_at_tick(60)
        expected = ((self.L << 96) * (b - a) // b) // a
        assert LiquidityAmounts.amount0_for_liquidity(a, b, self.L) == expected

    def test_max_liquidity_no_overflow(self):
        amount0, amount1 = LiquidityAmounts.amounts_from_liquidity(MAX_UINT128, 0, MIN_TICK, MAX_TICK)
        assert amount0 > 0 and amount1 > 0


# ── Display path ─────────────────────────────────────────────────────────

class TestTickToPrice:

    def test_tick_zero_same_decimals(self):
        assert tick_to_price(0, 18, 18) == 1.0

    def test_tick_zero_scaled_by_decimal_difference(self):
        assert tick_to_price(0, 6, 18) == pytest.approx(1e-12)
        assert tick_to_price(0, 18, 6) == pytest.approx(1e12)

    @pytest.mark.parametrize("tick", [-1000, -1, 1, 1000, 50000])
    def test_formula(self, tick: int):
        assert tick_to_price(tick, 18, 18) == pytest.approx(1.0001 ** tick)

    def test_overflow_is_infinite(self):
        assert math.isinf(tick_to_price(10_000_000, 18, 18))


class TestPlausibility:

    @pytest.mark.parametrize("lower,upper,liq,expected", [
        (-100, 100, 1, True),
        (-2_999_999, 2_999_999, 10 ** 18, True),
        (-3_000_000, 100, 1, False),
        (-100, 3_000_000, 1, False),
        (-100, 100, 0, False),
        (-100, 100, MAX_UINT128, True),
        (-100, 100, MAX_UINT128 + 1, False),
    ])
    def test_position(self, lower, upper, liq, expected):
        assert is_plausible_position(lower, upper, liq) is expected

    def test_position_allow_empty(self):
        assert is_plausible_position(-100, 100, 0, allow_empty=True) is True

    @pytest.mark.parametrize("rate,expected", [
        (1.0, True),
        (2e-12, True),
        (1e-12, False),
        (1e12, False),
        (float("inf"), False),
        (float("nan"), False),
        (None, False),
    ])
    def test_rate(self, rate, expected):
        assert is_plausible_rate(rate) is expected


class TestUnitsAndClamp:

    def test_format_units_exact(self):
        assert format_units(1_500_000, 6) == 1.5
        assert format_units(10 ** 18, 18) == 1.0
        assert format_units(0, 18) == 0.0

    def test_format_units_large_raw(self):
        # beyond 2^53: dividing as Decimal keeps the leading digits exact
        assert format_units(123456789012345678901234567, 18) == pytest.approx(123456789.01234567)

    @pytest.mark.parametrize("value,expected", [
        (1.23456789, 1.234568),
        (0.0000001, 0.0),
        (123.0, 123.0),
        (1234567890.0, 1.2346e9),
        (-2.5e10, -2.5e10),
        (float("inf"), 0.0),
        (float("nan"), 0.0),
    ])
    def test_clamp_precision(self, value, expected):
        assert clamp_precision(value) == expected
