#!/usr/bin/env python3
"""
On-Chain Position Reader for Algebra-style Concentrated Liquidity
=================================================================

Turns one position NFT token id into a normalized `Position`.
No web3.py dependency: every read is a raw eth_call through RpcClient.

Data Sources (per token id):
─────────────────────────────
1. PositionManager.positions(tokenId)
   Two field layouts are seen in the wild (see decode_raw_position):
     compact  token0=w2 token1=w3 tickLower=w4 tickUpper=w5 liquidity=w6
              tokensOwed0=w9 tokensOwed1=w10
     offset   one extra word before the ticks: ticks=w5/w6 liquidity=w7
              tokensOwed0=w10 tokensOwed1=w11

2. FarmingCenter.deposits(tokenId) → word 3 = pool of a staked position
   Factory.poolByPair(tokenA, tokenB) (tried in both orders)

3. Pool.globalState() → word 1 = current tick (int24)

4. ERC-20.decimals(), ERC-20.symbol()  (18 / "TKN" when unreadable)

Math:
─────
  Amounts: LiquidityAmounts on exact Q96 sqrt ratios (real_defi_math)
  Prices:  p(i) = 1.0001^i × 10^(d0 − d1), token1 per token0

Valuation:
──────────
  Stable sides count at face value. A non-stable side is converted
  through the pool price when its partner is stable. Neither side
  stable → no USD value. Display prices are returned unrounded.
"""

import asyncio
import logging
import math
import sys
from typing import Dict, List, Optional, Tuple

from lp_dashboard.central_config import DeploymentConfig
from lp_dashboard.errors import PoolNotFoundError, PositionDecodeError, RpcError
from lp_dashboard.models import AttemptLog, PoolState, Position, RawPosition, TokenMeta
from lp_dashboard.rpc_helpers import (
    ZERO_ADDRESS,
    RpcClient,
    build_calldata,
    decode_address,
    decode_signed_int,
    decode_string,
    decode_uint,
    decode_words,
    encode_address,
    encode_uint,
)
from lp_dashboard.stablecoins import REWARD_SYMBOL, STABLE_MARKERS, is_stablecoin, reward_side
from real_defi_math import (
    LiquidityAmounts,
    clamp_precision,
    format_units,
    is_plausible_position,
    tick_to_price,
)

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18
DEFAULT_SYMBOL = "TKN"
MAX_DECIMALS = 255      # uint8

# (name, tickLower word, tokensOwed0 word, minimum word count)
_LAYOUTS: Tuple[Tuple[str, int, int, int], ...] = (
    ("compact", 4, 9, 11),
    ("offset", 5, 10, 12),
)


# ── positions() decoding ────────────────────────────────────────────────


def _layout_candidate(words: List[str], name: str, tick_at: int, owed_at: int) -> RawPosition:
    return RawPosition(
        token0=decode_address(words[2]),
        token1=decode_address(words[3]),
        tick_lower=decode_signed_int(words[tick_at], 24),
        tick_upper=decode_signed_int(words[tick_at + 1], 24),
        liquidity=decode_uint(words[tick_at + 2]),
        owed0=decode_uint(words[owed_at]),
        owed1=decode_uint(words[owed_at + 1]),
        layout=name,
    )


def decode_raw_position(data: str) -> RawPosition:
    """
    Decode a positions(tokenId) return payload.

    The compact layout is preferred; the offset layout is used only when
    the compact reading is implausible. A second, relaxed pass accepts
    zero liquidity so closed positions still decode.

    Raises:
        PositionDecodeError: if no layout yields plausible ticks/liquidity.
    """
    words = decode_words(data)
    candidates = [
        _layout_candidate(words, name, tick_at, owed_at)
        for name, tick_at, owed_at, min_words in _LAYOUTS
        if len(words) >= min_words
    ]
    if not candidates:
        raise PositionDecodeError(f"positions() returned {len(words)} words, expected at least 11")

    for allow_empty in (False, True):
        for raw in candidates:
            if is_plausible_position(raw.tick_lower, raw.tick_upper, raw.liquidity, allow_empty):
                return raw

    raise PositionDecodeError(
        "positions() payload matches no known layout "
        f"(compact ticks {candidates[0].tick_lower}/{candidates[0].tick_upper}, "
        f"liquidity {candidates[0].liquidity})"
    )


# ── Valuation ───────────────────────────────────────────────────────────


def value_in_usd(
    amount0: float, amount1: float, price: float, stable0: bool, stable1: bool
) -> Tuple[Optional[float], Optional[float]]:
    """
    USD value of each side, or None where it cannot be inferred.

    A stable side counts at face value. The other side is converted
    through the pool price (token1 per token0) only when its partner
    is stable:

      token0 = amount0 × price    if token1 is stable
      token1 = amount1 / price    if token0 is stable
    """
    price_ok = math.isfinite(price) and price > 0
    if stable0:
        usd0 = amount0
    elif stable1 and price_ok:
        usd0 = amount0 * price
    else:
        usd0 = None
    if stable1:
        usd1 = amount1
    elif stable0 and price_ok:
        usd1 = amount1 / price
    else:
        usd1 = None
    return usd0, usd1


def _display_price(price: float) -> Optional[float]:
    """Unrounded display price; None when it overflows."""
    return price if math.isfinite(price) else None


def _sum_defined(*values: Optional[float]) -> Optional[float]:
    defined = [v for v in values if v is not None]
    return sum(defined) if defined else None


def _by_symbol(sym0: str, value0: float, sym1: str, value1: float) -> Dict[str, float]:
    """Upper-cased symbol → clamped amount (same-symbol pairs are summed)."""
    out: Dict[str, float] = {}
    for symbol, value in ((sym0, value0), (sym1, value1)):
        key = symbol.upper()
        out[key] = out.get(key, 0.0) + value
    return {key: clamp_precision(value) for key, value in out.items()}


def build_position(
    token_id: int,
    raw: RawPosition,
    pool_state: PoolState,
    meta0: TokenMeta,
    meta1: TokenMeta,
    stable_markers=STABLE_MARKERS,
    reward_symbol: str = REWARD_SYMBOL,
) -> Position:
    """Pure assembly step: raw chain values in, display-ready Position out."""
    tick_lower, tick_upper = sorted((raw.tick_lower, raw.tick_upper))
    current_tick = pool_state.current_tick
    d0, d1 = meta0.decimals, meta1.decimals
    sym0, sym1 = meta0.symbol, meta1.symbol

    raw0, raw1 = LiquidityAmounts.amounts_from_liquidity(
        raw.liquidity, current_tick, tick_lower, tick_upper
    )
    amount0 = format_units(raw0, d0)
    amount1 = format_units(raw1, d1)
    fees0 = format_units(raw.owed0, d0)
    fees1 = format_units(raw.owed1, d1)

    price_current = tick_to_price(current_tick, d0, d1)
    price_lower = tick_to_price(tick_lower, d0, d1)
    price_upper = tick_to_price(tick_upper, d0, d1)

    stable0 = is_stablecoin(sym0, stable_markers)
    stable1 = is_stablecoin(sym1, stable_markers)
    total_value = _sum_defined(*value_in_usd(amount0, amount1, price_current, stable0, stable1))
    fees_usd = _sum_defined(*value_in_usd(fees0, fees1, price_current, stable0, stable1))

    if total_value is None or not math.isfinite(total_value) or total_value < 0:
        total_value = 0.0
    if fees_usd is not None and (not math.isfinite(fees_usd) or fees_usd < 0):
        fees_usd = None

    token_amounts = _by_symbol(sym0, amount0, sym1, amount1)
    accrued = _by_symbol(sym0, fees0, sym1, fees1)

    reward_idx = reward_side(sym0, sym1, reward_symbol)
    reward_amount = None
    if reward_idx is not None:
        reward_amount = clamp_precision(fees0 if reward_idx == 0 else fees1)

    return Position(
        pool_name=f"{sym0}/{sym1} • #{token_id}",
        total_value_usd=clamp_precision(total_value),
        token_amounts=token_amounts,
        accrued_fees_tokens=accrued,
        accrued_fees_usd=clamp_precision(fees_usd) if fees_usd is not None else None,
        in_range=tick_lower <= current_tick <= tick_upper,
        is_active=raw.liquidity > 0,
        reward_kitten=reward_amount,
        price_lower=_display_price(price_lower),
        price_upper=_display_price(price_upper),
        price_current=_display_price(price_current),
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        token_id=token_id,
    )


# ── Position Reader ─────────────────────────────────────────────────────


class PositionReader:
    """
    Reads position NFTs for one deployment.

    Usage:
        reader = PositionReader(rpc, config)
        position = await reader.read_position(42)
        positions = await reader.read_positions([42, 43], attempts)
    """

    def __init__(self, rpc: RpcClient, config: DeploymentConfig):
        self.rpc = rpc
        self.config = config

    # ── Chain reads ──────────────────────────────────────────────────

    async def read_raw_position(self, token_id: int) -> RawPosition:
        result = await self.rpc.eth_call(
            self.config.position_manager, build_calldata("positions", encode_uint(token_id))
        )
        return decode_raw_position(result)

    async def read_deposit_pool(self, token_id: int) -> Optional[str]:
        """Pool recorded by the farming center for a staked token, or None."""
        if not self.config.farming_center or self.config.farming_center == ZERO_ADDRESS:
            return None
        try:
            result = await self.rpc.eth_call(
                self.config.farming_center, build_calldata("deposits", encode_uint(token_id))
            )
            pool = decode_address(decode_words(result)[3])
        except (RpcError, ValueError, IndexError) as exc:
            logger.debug("deposits(%d) unavailable: %s", token_id, exc)
            return None
        return None if pool == ZERO_ADDRESS else pool

    async def find_pool(self, token_a: str, token_b: str) -> str:
        """
        Factory.poolByPair, trying (a, b) then (b, a).

        Raises:
            PoolNotFoundError: if neither ordering returns a pool.
        """
        for first, second in ((token_a, token_b), (token_b, token_a)):
            try:
                result = await self.rpc.eth_call(
                    self.config.factory,
                    build_calldata("poolByPair", encode_address(first), encode_address(second)),
                )
                pool = decode_address(decode_words(result)[0])
            except (RpcError, ValueError, IndexError) as exc:
                logger.debug("poolByPair(%s, %s) failed: %s", first, second, exc)
                continue
            if pool != ZERO_ADDRESS:
                return pool
        raise PoolNotFoundError(f"Pool address not found for pair {token_a}/{token_b}")

    async def resolve_pool(self, token_id: int, raw: RawPosition) -> str:
        pool = await self.read_deposit_pool(token_id)
        if pool:
            return pool
        return await self.find_pool(raw.token0, raw.token1)

    async def read_pool_state(self, pool: str) -> PoolState:
        """globalState() word 1 holds the current tick as int24."""
        result = await self.rpc.eth_call(pool, build_calldata("globalState"))
        words = decode_words(result)
        if len(words) < 2:
            raise PositionDecodeError(f"globalState() of {pool} returned {len(words)} words")
        return PoolState(current_tick=decode_signed_int(words[1], 24))

    async def fetch_decimals(self, token: str) -> Optional[int]:
        """decimals() of a token, or None when unreadable or above uint8."""
        try:
            result = await self.rpc.eth_call(token, build_calldata("decimals"))
            value = decode_uint(decode_words(result)[0])
        except (RpcError, ValueError, IndexError) as exc:
            logger.debug("decimals() of %s unreadable: %s", token, exc)
            return None
        return value if value <= MAX_DECIMALS else None

    async def read_decimals(self, token: str) -> int:
        value = await self.fetch_decimals(token)
        return DEFAULT_DECIMALS if value is None else value

    async def read_symbol(self, token: str) -> str:
        try:
            result = await self.rpc.eth_call(token, build_calldata("symbol"))
            symbol = decode_string(result).strip()
        except (RpcError, ValueError) as exc:
            logger.debug("symbol() of %s unreadable: %s", token, exc)
            return DEFAULT_SYMBOL
        return symbol or DEFAULT_SYMBOL

    async def read_token_meta(self, token: str) -> TokenMeta:
        return TokenMeta(decimals=await self.read_decimals(token), symbol=await self.read_symbol(token))

    # ── Resolution ───────────────────────────────────────────────────

    async def read_position(self, token_id: int) -> Position:
        """
        Full resolution of a single token id.

        Raises:
            RpcError, PoolNotFoundError, PositionDecodeError
        """
        raw = await self.read_raw_position(token_id)
        pool = await self.resolve_pool(token_id, raw)
        pool_state = await self.read_pool_state(pool)
        meta0 = await self.read_token_meta(raw.token0)
        meta1 = await self.read_token_meta(raw.token1)
        logger.debug(
            "token %d: layout=%s pool=%s tick=%d ticks=[%d, %d] L=%d",
            token_id, raw.layout, pool, pool_state.current_tick,
            raw.tick_lower, raw.tick_upper, raw.liquidity,
        )
        return build_position(
            token_id, raw, pool_state, meta0, meta1,
            stable_markers=self.config.stable_markers,
            reward_symbol=self.config.reward_symbol,
        )

    async def _read_isolated(self, token_id: int, gate: asyncio.Semaphore) -> Tuple[AttemptLog, Optional[Position]]:
        step = f"decode-position-{token_id}"
        async with gate:
            try:
                position = await self.read_position(token_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Position %d failed: %s", token_id, exc)
                return AttemptLog(step=step, success=False, error=str(exc)), None
        pair = position.pool_name.rsplit(" • #", 1)[0]
        return AttemptLog(step=step, success=True, details=f"{pair} tokenId #{token_id}"), position

    async def read_positions(self, token_ids: List[int], attempts: List[AttemptLog]) -> List[Position]:
        """
        Resolve each token id independently.

        At most config.max_concurrency ids are in flight; attempts and
        positions keep the order of token_ids either way.
        """
        gate = asyncio.Semaphore(self.config.max_concurrency)
        results = await asyncio.gather(*(self._read_isolated(tid, gate) for tid in token_ids))
        positions = []
        for attempt, position in results:
            attempts.append(attempt)
            if position is not None:
                positions.append(position)
        return positions


# ── Standalone CLI ──────────────────────────────────────────────────────


async def _main(token_id: int) -> Position:
    config = DeploymentConfig.from_env()
    async with RpcClient.from_config(config) as rpc:
        position = await PositionReader(rpc, config).read_position(token_id)

    print(f"\n  {position.pool_name}")
    print(f"  Ticks:  [{position.tick_lower}, {position.tick_upper}]  "
          f"{'In Range' if position.in_range else 'OUT OF RANGE'}")
    print(f"  Price:  {position.price_current} (range {position.price_lower} – {position.price_upper})")
    for symbol, amount in position.token_amounts.items():
        print(f"  {symbol:>8}: {amount}")
    print(f"  Value:  ${position.total_value_usd:,.2f}")
    return position


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python position_reader.py <token_id>")
        sys.exit(1)
    asyncio.run(_main(int(sys.argv[1])))
