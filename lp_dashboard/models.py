"""
Position Data Model
===================

Dataclasses passed between discovery, resolution and reward pricing,
plus the camelCase dict form returned to the dashboard / API caller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RawPosition:
    """Decoded positions(tokenId) tuple (one of two known field layouts)."""

    token0: str
    token1: str
    tick_lower: int
    tick_upper: int
    liquidity: int
    owed0: int
    owed1: int
    layout: str = "compact"


@dataclass(frozen=True)
class PoolState:
    current_tick: int


@dataclass(frozen=True)
class TokenMeta:
    decimals: int
    symbol: str


@dataclass
class AttemptLog:
    """One discovery / resolution step, kept for diagnostics only."""

    step: str
    success: bool
    details: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"step": self.step, "success": self.success}
        if self.details is not None:
            out["details"] = self.details
        if self.error is not None:
            out["error"] = self.error
        return out


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Position:
    """
    Normalized LP position, as shown on the dashboard.

    Prices are token1 per token0. tick_lower <= tick_upper always holds;
    in_range is derived from the current tick regardless of is_active.
    Only reward_kitten_usd is written after construction (reward back-fill).
    """

    pool_name: str
    total_value_usd: float
    token_amounts: Dict[str, float]
    accrued_fees_tokens: Dict[str, float]
    in_range: bool
    is_active: bool
    accrued_fees_usd: Optional[float] = None
    reward_kitten: Optional[float] = None
    reward_kitten_usd: Optional[float] = None
    price_lower: Optional[float] = None
    price_upper: Optional[float] = None
    price_current: Optional[float] = None
    tick_lower: Optional[int] = None
    tick_upper: Optional[int] = None
    share_percent: Optional[float] = None
    token_id: Optional[int] = None
    last_updated: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poolName": self.pool_name,
            "totalValueUsd": self.total_value_usd,
            "sharePercent": self.share_percent,
            "tokenAmounts": dict(self.token_amounts),
            "accruedFeesUsd": self.accrued_fees_usd,
            "accruedFeesTokens": dict(self.accrued_fees_tokens),
            "rewardKitten": self.reward_kitten,
            "rewardKittenUsd": self.reward_kitten_usd,
            "priceLower": self.price_lower,
            "priceUpper": self.price_upper,
            "priceCurrent": self.price_current,
            "tickLower": self.tick_lower,
            "tickUpper": self.tick_upper,
            "inRange": self.in_range,
            "isActive": self.is_active,
            "lastUpdated": self.last_updated,
        }


@dataclass
class FetchMeta:
    kitten_usd: Optional[float] = None
    total_kitten_fees: Optional[float] = None
    total_kitten_fees_usd: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kittenUsd": self.kitten_usd,
            "totalKittenFees": self.total_kitten_fees,
            "totalKittenFeesUsd": self.total_kitten_fees_usd,
        }


@dataclass
class FetchResult:
    positions: List[Position]
    source: str
    attempts: List[AttemptLog]
    meta: FetchMeta = field(default_factory=FetchMeta)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positions": [p.to_dict() for p in self.positions],
            "source": self.source,
            "attempts": [a.to_dict() for a in self.attempts],
            "meta": self.meta.to_dict(),
        }
