"""
Payload Extractor — position-like records from arbitrary JSON
=============================================================

Used on the alternate data path (Hyperliquid info API or any JSON feed)
where the response schema is not known in advance.

  1. Breadth-first search for the shallowest list of dicts in which at
     least one dict looks like a position (has any candidate key).
     Under a dict, well-known container keys ("positions", "balances", …)
     are visited before the others.
  2. Each record is mapped through FIELD_CANDIDATES, a declarative list
     of (candidate key, target field) pairs evaluated in priority order;
     the first candidate whose value coerces cleanly wins.
  3. Per-token amounts come either from a symbol → amount mapping or
     from (symbol key, amount key) pairs such as Hyperliquid's
     {"coin": "USDC", "total": "14.6"}.

Keys are matched case-insensitively. Nothing here raises on unknown
shapes: an unrecognized payload yields an empty list.
"""

import math
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from lp_dashboard.models import Position
from lp_dashboard.stablecoins import is_stablecoin
from real_defi_math import clamp_precision

MAX_DEPTH = 8

# ── Declarative mapping ─────────────────────────────────────────────────
# (candidate key, target field), highest priority first per target.

FIELD_CANDIDATES: Tuple[Tuple[str, str], ...] = (
    # value
    ("totalValueUsd", "total_value_usd"),
    ("valueUsd", "total_value_usd"),
    ("usdValue", "total_value_usd"),
    ("positionValue", "total_value_usd"),
    ("value", "total_value_usd"),
    # share
    ("sharePercent", "share_percent"),
    ("poolShare", "share_percent"),
    ("share", "share_percent"),
    # fees
    ("accruedFeesUsd", "accrued_fees_usd"),
    ("unclaimedFeesUsd", "accrued_fees_usd"),
    ("feesUsd", "accrued_fees_usd"),
    ("fees", "accrued_fees_usd"),
    # rewards
    ("rewardKitten", "reward_kitten"),
    ("rewardKittenUsd", "reward_kitten_usd"),
    # range / status
    ("inRange", "in_range"),
    ("isInRange", "in_range"),
    ("isActive", "is_active"),
    ("active", "is_active"),
    # prices / ticks
    ("priceLower", "price_lower"),
    ("priceUpper", "price_upper"),
    ("priceCurrent", "price_current"),
    ("tickLower", "tick_lower"),
    ("tickUpper", "tick_upper"),
    ("tokenId", "token_id"),
    ("id", "token_id"),
    # timestamp
    ("lastUpdated", "last_updated"),
    ("updatedAt", "last_updated"),
    ("timestamp", "last_updated"),
    ("time", "last_updated"),
    # pool name
    ("poolName", "pool_name"),
    ("pool", "pool_name"),
    ("pair", "pool_name"),
    ("name", "pool_name"),
    ("coin", "pool_name"),
)

# symbol → amount mappings (or lists of token records)
TOKEN_MAP_KEYS: Tuple[str, ...] = ("tokenAmounts", "amounts", "tokens", "balances")

# (symbol key, amount key) pairs for a flat single-token record
TOKEN_PAIR_KEYS: Tuple[Tuple[str, str], ...] = (
    ("coin", "total"),
    ("symbol", "amount"),
    ("symbol", "balance"),
    ("token", "amount"),
    ("asset", "amount"),
)

FEE_MAP_KEYS: Tuple[str, ...] = ("accruedFeesTokens", "feesTokens", "unclaimedFees")

# Containers worth visiting first during the breadth-first search
PREFERRED_CONTAINERS: Tuple[str, ...] = (
    "positions", "lpPositions", "liquidityPositions", "balances", "data", "result", "items",
)


# ── Coercion ────────────────────────────────────────────────────────────


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> Optional[int]:
    number = _to_number(value)
    return int(number) if number is not None and number == int(number) else None


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _to_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_timestamp(value: Any) -> Optional[str]:
    """ISO-8601 string, or epoch seconds / milliseconds converted to one."""
    number = _to_number(value)
    if number is None:
        return _to_text(value)
    seconds = number / 1000 if number > 1e11 else number
    try:
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return moment.isoformat().replace("+00:00", "Z")


TARGET_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "total_value_usd": _to_number,
    "share_percent": _to_number,
    "accrued_fees_usd": _to_number,
    "reward_kitten": _to_number,
    "reward_kitten_usd": _to_number,
    "in_range": _to_bool,
    "is_active": _to_bool,
    "price_lower": _to_number,
    "price_upper": _to_number,
    "price_current": _to_number,
    "tick_lower": _to_int,
    "tick_upper": _to_int,
    "token_id": _to_int,
    "last_updated": _to_timestamp,
    "pool_name": _to_text,
}

_PREFERRED = frozenset(key.lower() for key in PREFERRED_CONTAINERS)

_CANDIDATE_KEYS = frozenset(key.lower() for key, _ in FIELD_CANDIDATES) | frozenset(
    key.lower() for key in TOKEN_MAP_KEYS
)


# ── Search ──────────────────────────────────────────────────────────────


def _lower_keys(record: dict) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in record.items()}


def looks_like_position(record: Any) -> bool:
    return isinstance(record, dict) and any(str(k).lower() in _CANDIDATE_KEYS for k in record)


def find_position_records(payload: Any) -> List[dict]:
    """Shallowest list of dicts containing at least one position-like record."""
    queue = deque([(payload, 0)])
    while queue:
        node, depth = queue.popleft()
        if isinstance(node, list):
            records = [item for item in node if isinstance(item, dict)]
            if any(looks_like_position(item) for item in records):
                return records
            children = node
        elif isinstance(node, dict):
            lowered = _lower_keys(node)
            preferred = [lowered[k.lower()] for k in PREFERRED_CONTAINERS if k.lower() in lowered]
            rest = [v for k, v in lowered.items() if k not in _PREFERRED]
            children = preferred + rest
        else:
            continue
        if depth < MAX_DEPTH:
            queue.extend((child, depth + 1) for child in children if isinstance(child, (list, dict)))
    return []


# ── Mapping ─────────────────────────────────────────────────────────────


def map_fields(record: dict) -> Dict[str, Any]:
    """Apply FIELD_CANDIDATES in order; first clean value per target wins."""
    lowered = _lower_keys(record)
    fields: Dict[str, Any] = {}
    for key, target in FIELD_CANDIDATES:
        if target in fields or key.lower() not in lowered:
            continue
        value = TARGET_COERCERS[target](lowered[key.lower()])
        if value is not None:
            fields[target] = value
    return fields


def _symbol_amounts(container: Any) -> Dict[str, float]:
    """symbol → amount from a mapping or from a list of token records."""
    amounts: Dict[str, float] = {}
    if isinstance(container, dict):
        items = list(container.items())
    elif isinstance(container, list):
        items = [_token_pair(rec) for rec in container if isinstance(rec, dict)]
        items = [pair for pair in items if pair is not None]
    else:
        return amounts
    for symbol, raw in items:
        amount = _to_number(raw)
        text = _to_text(symbol)
        if amount is not None and text:
            key = text.upper()
            amounts[key] = amounts.get(key, 0.0) + amount
    return amounts


def _token_pair(record: dict) -> Optional[Tuple[str, Any]]:
    lowered = _lower_keys(record)
    for symbol_key, amount_key in TOKEN_PAIR_KEYS:
        symbol = _to_text(lowered.get(symbol_key))
        if symbol and amount_key in lowered:
            return symbol, lowered[amount_key]
    return None


def token_amounts(record: dict) -> Dict[str, float]:
    lowered = _lower_keys(record)
    for key in TOKEN_MAP_KEYS:
        amounts = _symbol_amounts(lowered.get(key.lower()))
        if amounts:
            return amounts
    return _symbol_amounts([record])


def fee_amounts(record: dict) -> Dict[str, float]:
    lowered = _lower_keys(record)
    for key in FEE_MAP_KEYS:
        amounts = _symbol_amounts(lowered.get(key.lower()))
        if amounts:
            return amounts
    return {}


def record_to_position(record: dict, index: int = 0) -> Position:
    fields = map_fields(record)
    amounts = token_amounts(record)

    value = fields.get("total_value_usd")
    if value is None and amounts and all(is_stablecoin(sym) for sym in amounts):
        value = sum(amounts.values())

    is_active = fields.get("is_active")
    if is_active is None:
        is_active = bool((value or 0) > 0 or any(a > 0 for a in amounts.values()))

    tick_lower, tick_upper = fields.get("tick_lower"), fields.get("tick_upper")
    if tick_lower is not None and tick_upper is not None and tick_lower > tick_upper:
        tick_lower, tick_upper = tick_upper, tick_lower

    optional = {
        target: fields[target]
        for target in ("share_percent", "accrued_fees_usd", "reward_kitten", "reward_kitten_usd",
                       "price_lower", "price_upper", "price_current", "token_id", "last_updated")
        if target in fields
    }
    return Position(
        pool_name=fields.get("pool_name") or f"Position #{index + 1}",
        total_value_usd=clamp_precision(value or 0.0),
        token_amounts={k: clamp_precision(v) for k, v in amounts.items()},
        accrued_fees_tokens={k: clamp_precision(v) for k, v in fee_amounts(record).items()},
        in_range=bool(fields.get("in_range", False)),
        is_active=is_active,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        **optional,
    )


def extract_positions(payload: Any) -> List[Position]:
    """All position-like records in payload, mapped to Position (may be empty)."""
    return [
        record_to_position(record, i)
        for i, record in enumerate(find_position_records(payload))
        if looks_like_position(record)
    ]
