"""
Stable & Reward Token Classification
====================================

Symbol-based classification used by position valuation:

  - Stable tokens are assumed pegged to 1 USD and count at face value.
    The other side of a pair is valued through the pool price only when
    its partner is stable; pairs with no stable side stay unvalued.
  - Reward tokens (KITTEN and wrapped variants) are tracked separately
    so their USD value can be back-filled once a reward price exists.

Matching is a case-insensitive SUBSTRING test, so bridged or branded
variants (USDC.e, USDT0, USD₮0, sUSDe) classify with their base asset.
"""

from typing import Iterable, Optional

# ── Known Stable Markers ────────────────────────────────────────────────
# Upper-case substrings. "USD" alone already covers most of the others;
# they stay listed so deployments can pass a narrower tuple.

STABLE_MARKERS: tuple = (
    "USD", "USDT", "USDC", "DAI", "USDE", "USD∅", "USD0", "USDO",
)

REWARD_SYMBOL = "KITTEN"


def is_stablecoin(symbol: str, markers: Iterable[str] = STABLE_MARKERS) -> bool:
    """
    Check if a token symbol looks like a USD stablecoin.

    Examples:
        >>> is_stablecoin("USDC")
        True
        >>> is_stablecoin("usdt0")
        True
        >>> is_stablecoin("WHYPE")
        False
    """
    upper = symbol.strip().upper()
    return any(marker in upper for marker in markers)


def is_reward_token(symbol: str, reward_symbol: str = REWARD_SYMBOL) -> bool:
    """True for the reward ticker and anything containing it (WKITTEN, xKITTEN)."""
    return reward_symbol.upper() in symbol.strip().upper()


def reward_side(symbol0: str, symbol1: str, reward_symbol: str = REWARD_SYMBOL) -> Optional[int]:
    """Index of the reward token in the pair (token0 wins a tie), or None."""
    if is_reward_token(symbol0, reward_symbol):
        return 0
    if is_reward_token(symbol1, reward_symbol):
        return 1
    return None
