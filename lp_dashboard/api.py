"""
Request Handling — wallet in, position envelope out
===================================================

Entry points a web route or the CLI calls:

  fetch_onchain_positions(wallet)   discovery → resolution → reward pricing
  fetch_fallback_positions(wallet)  Hyperliquid info API → payload extractor
  handle_positions_request(body)    (status, payload) for the on-chain path
  handle_fallback_request(body)     (status, payload) for the fallback path

Status mapping:
  400  malformed wallet (checked before any network call)
  502  RPC endpoint unreachable during initial discovery
  5xx  fallback source failure (upstream status kept when it sent one)
  200  {positions, source, attempts, meta}

"No positions" and "some positions failed" are both 200; the difference
is only visible in `attempts`.
"""

import logging
import re
from typing import Any, Optional, Tuple

from lp_dashboard.central_config import DeploymentConfig
from lp_dashboard.errors import DataSourceError, InvalidWalletError, RpcError
from lp_dashboard.hyperliquid_client import SOURCE_LABEL, HyperliquidInfoClient
from lp_dashboard.models import AttemptLog, FetchMeta, FetchResult
from lp_dashboard.payload_extractor import extract_positions
from lp_dashboard.rpc_helpers import RpcClient

logger = logging.getLogger(__name__)

WALLET_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")


# ── Validation ──────────────────────────────────────────────────────────


def is_valid_wallet_address(address: Any) -> bool:
    return isinstance(address, str) and WALLET_PATTERN.fullmatch(address.strip()) is not None


def validate_wallet(address: Any) -> str:
    """
    Stripped wallet address.

    Raises:
        InvalidWalletError: if missing or not 0x + 40 hex characters.
    """
    if not is_valid_wallet_address(address):
        shown = address if isinstance(address, str) and address else "<empty>"
        raise InvalidWalletError(f"Invalid wallet address: {shown}")
    return address.strip()


# ── On-chain path ───────────────────────────────────────────────────────


async def fetch_onchain_positions(
    wallet: str,
    config: Optional[DeploymentConfig] = None,
    rpc: Optional[RpcClient] = None,
) -> FetchResult:
    """
    All positions of a wallet, read straight from the chain.

    Raises:
        InvalidWalletError: before any RPC call.
        RpcError: only when discovery cannot reach the endpoint at all.
    """
    from position_indexer import PositionIndexer
    from position_reader import PositionReader
    from reward_pricing import RewardPricer

    wallet = validate_wallet(wallet)
    config = config or DeploymentConfig.from_env()
    owns_client = rpc is None
    if rpc is None:
        rpc = RpcClient.from_config(config)

    attempts = []
    try:
        token_ids = await PositionIndexer(rpc, config).discover(wallet, attempts)
        if not token_ids:
            attempts.append(AttemptLog(
                step="no-token-ids",
                success=False,
                error=f"No LP position NFTs found for {wallet}",
            ))
            return FetchResult([], config.source_label, attempts, FetchMeta())

        positions = await PositionReader(rpc, config).read_positions(token_ids, attempts)
        if not positions:
            attempts.append(AttemptLog(
                step="positions-empty",
                success=False,
                error="Unable to decode any LP positions",
            ))

        meta = await RewardPricer(rpc, config).apply(positions, attempts)
    finally:
        if owns_client:
            await rpc.aclose()

    logger.info("%s: %d token ids, %d positions", wallet, len(token_ids), len(positions))
    return FetchResult(positions, config.source_label, attempts, meta)


async def handle_positions_request(
    body: Any,
    config: Optional[DeploymentConfig] = None,
    rpc: Optional[RpcClient] = None,
) -> Tuple[int, dict]:
    """JSON body {"walletAddress": "0x..."} → (HTTP status, JSON payload)."""
    wallet = body.get("walletAddress") if isinstance(body, dict) else None
    try:
        wallet = validate_wallet(wallet)
    except InvalidWalletError as exc:
        return 400, {"error": "Wallet address is required.", "details": str(exc)}

    try:
        result = await fetch_onchain_positions(wallet, config, rpc)
    except RpcError as exc:
        logger.warning("Discovery failed for %s: %s", wallet, exc)
        return 502, {"error": "Unable to reach the HyperEVM RPC endpoint.", "details": str(exc)}
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected failure for %s", wallet)
        return 500, {"error": "Unable to process request.", "details": str(exc)}
    return 200, result.to_dict()


# ── Fallback path ───────────────────────────────────────────────────────


async def fetch_fallback_positions(
    wallet: str,
    config: Optional[DeploymentConfig] = None,
    client: Optional[HyperliquidInfoClient] = None,
) -> FetchResult:
    """
    Positions extracted from the Hyperliquid info API payload.

    Raises:
        InvalidWalletError: before any request.
        DataSourceError: the info API failed.
    """
    wallet = validate_wallet(wallet)
    config = config or DeploymentConfig.from_env()
    client = client or HyperliquidInfoClient.from_config(config)

    payload = await client.fetch_user_state(wallet)
    positions = extract_positions(payload)
    attempts = [AttemptLog(
        step="extract-payload",
        success=bool(positions),
        details=f"Extracted {len(positions)} position-like records",
        error=None if positions else "No position-like records in payload",
    )]
    return FetchResult(positions, SOURCE_LABEL, attempts)


async def handle_fallback_request(
    body: Any,
    config: Optional[DeploymentConfig] = None,
    client: Optional[HyperliquidInfoClient] = None,
) -> Tuple[int, dict]:
    wallet = body.get("walletAddress") if isinstance(body, dict) else None
    try:
        wallet = validate_wallet(wallet)
    except InvalidWalletError as exc:
        return 400, {"error": "Wallet address is required.", "details": str(exc)}

    try:
        result = await fetch_fallback_positions(wallet, config, client)
    except DataSourceError as exc:
        payload = {"error": "Failed to fetch Hyperliquid data.", "details": str(exc)}
        if exc.payload:
            payload["payload"] = exc.payload
        return exc.status_code, payload
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected fallback failure for %s", wallet)
        return 500, {"error": "Unable to process request.", "details": str(exc)}

    response = {"protocol": "Kittenswap", "network": "Hyperliquid"}
    response.update(result.to_dict())
    return 200, response
