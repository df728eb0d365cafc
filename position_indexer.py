#!/usr/bin/env python3
"""
Position Indexer — Wallet → Position Token IDs
==============================================

Discovers the position NFTs a wallet holds on the NonfungiblePositionManager.

Strategy:
  1. ERC-721 Enumerable
       balanceOf(wallet)            → count
       tokenOfOwnerByIndex(w, i)    → token id at index i
     Any failure (method missing, revert, RPC error) silently falls through.

  2. Transfer log scan
       eth_getLogs(Transfer, to = wallet)   and   (Transfer, from = wallet)
       over [start_block, latest] in fixed chunks (default 800 blocks).
       A failing chunk is bisected once; a half that still fails is
       dropped (best effort, logged), never fatal for the wallet.

  3. Deduplicate + sort numerically.

Every strategy appends one AttemptLog entry. An empty result is not an
error. The only failure that escapes is an unreachable endpoint when
fetching the latest block for the log scan.

Contract References:
  ERC-721 Enumerable: https://eips.ethereum.org/EIPS/eip-721
  eth_getLogs:        https://ethereum.org/en/developers/docs/apis/json-rpc/#eth_getlogs
"""

import asyncio
import logging
import sys
from typing import Iterable, List, Set

from lp_dashboard.central_config import DeploymentConfig
from lp_dashboard.errors import RpcError
from lp_dashboard.models import AttemptLog
from lp_dashboard.rpc_helpers import (
    TRANSFER_TOPIC,
    RpcClient,
    build_calldata,
    decode_uint,
    decode_words,
    encode_address,
    encode_uint,
    to_topic_address,
)

logger = logging.getLogger(__name__)


class PositionIndexer:
    """
    Resolves the token ids a wallet owns.

    Usage:
        indexer = PositionIndexer(rpc, config)
        attempts = []
        token_ids = await indexer.discover("0x...wallet...", attempts)
    """

    def __init__(self, rpc: RpcClient, config: DeploymentConfig):
        self.rpc = rpc
        self.config = config
        self.position_manager = config.position_manager
        self.bisected_chunks = 0
        self.dropped_ranges: List[tuple] = []

    # ── Strategy 1: ERC-721 enumeration ──────────────────────────────

    async def get_position_count(self, wallet: str) -> int:
        """balanceOf(address) on the position manager."""
        result = await self.rpc.eth_call(
            self.position_manager, build_calldata("balanceOf", encode_address(wallet))
        )
        return decode_uint(decode_words(result)[0])

    async def get_token_ids(self, wallet: str, count: int) -> List[int]:
        """tokenOfOwnerByIndex for 0..count-1, one call at a time."""
        token_ids = []
        for i in range(count):
            result = await self.rpc.eth_call(
                self.position_manager,
                build_calldata("tokenOfOwnerByIndex", encode_address(wallet), encode_uint(i)),
            )
            token_ids.append(decode_uint(decode_words(result)[0]))
        return token_ids

    async def try_enumeration(self, wallet: str) -> tuple:
        """(token_ids, error) — error is a message when enumeration failed."""
        try:
            count = await self.get_position_count(wallet)
            return await self.get_token_ids(wallet, count), None
        except (RpcError, ValueError, IndexError) as exc:
            logger.info("Enumeration unavailable for %s: %s", wallet, exc)
            return [], str(exc)

    # ── Strategy 2: Transfer log scan ────────────────────────────────

    @staticmethod
    def _token_ids_from_logs(logs: Iterable[dict]) -> Set[int]:
        ids = set()
        for log in logs:
            topics = log.get("topics") or []
            if len(topics) < 4 or not topics[3]:
                continue
            try:
                ids.add(int(topics[3], 16))
            except (TypeError, ValueError):
                logger.warning("Skipping log with malformed tokenId topic %r", topics[3])
        return ids

    async def _scan_chunk(self, topics: list, from_block: int, to_block: int) -> Set[int]:
        """One chunk; on failure split once into two halves, each retried alone."""
        try:
            logs = await self.rpc.get_logs(self.position_manager, from_block, to_block, topics)
            return self._token_ids_from_logs(logs)
        except RpcError as exc:
            logger.warning("getLogs %d-%d failed (%s), bisecting", from_block, to_block, exc)

        self.bisected_chunks += 1
        if from_block == to_block:
            self.dropped_ranges.append((from_block, to_block))
            return set()

        mid = from_block + (to_block - from_block) // 2
        found: Set[int] = set()
        for lo, hi in ((from_block, mid), (mid + 1, to_block)):
            try:
                logs = await self.rpc.get_logs(self.position_manager, lo, hi, topics)
            except RpcError as exc:
                logger.warning("getLogs %d-%d still failing, dropping range: %s", lo, hi, exc)
                self.dropped_ranges.append((lo, hi))
                continue
            found |= self._token_ids_from_logs(logs)
        return found

    async def scan_range(self, topics: list, start_block: int, latest: int) -> Set[int]:
        """Walk [start_block, latest] in chunk_span steps (inclusive bounds)."""
        span = self.config.chunk_span
        ids: Set[int] = set()
        from_block = start_block
        while from_block <= latest:
            to_block = min(from_block + span, latest)
            ids |= await self._scan_chunk(topics, from_block, to_block)
            from_block = to_block + 1
        return ids

    async def scan_transfer_logs(self, wallet: str) -> List[int]:
        """
        Token ids ever transferred to or from the wallet.

        Raises:
            RpcError: if the latest block number cannot be fetched.
        """
        latest = await self.rpc.block_number()
        wallet_topic = to_topic_address(wallet)
        received = [TRANSFER_TOPIC, None, wallet_topic]
        sent = [TRANSFER_TOPIC, wallet_topic, None]

        ids: Set[int] = set()
        for topics in (received, sent):
            ids |= await self.scan_range(topics, self.config.start_block, latest)
        return sorted(ids)

    # ── Discovery state machine ──────────────────────────────────────

    async def discover(self, wallet: str, attempts: List[AttemptLog]) -> List[int]:
        """
        Enumeration first, log scan as fallback.

        Returns:
            Sorted, de-duplicated token ids (possibly empty).
        """
        wallet = wallet.lower()

        via_enum, enum_error = await self.try_enumeration(wallet)
        if via_enum:
            token_ids = sorted(set(via_enum))
            attempts.append(AttemptLog(
                step="enumerate-token-ids",
                success=True,
                details=f"Found {len(token_ids)} tokenIds via enumeration",
            ))
            return token_ids

        attempts.append(AttemptLog(
            step="enumerate-token-ids",
            success=False,
            details=(
                "Enumeration failed, falling back to log scan"
                if enum_error
                else "Enumeration returned no tokenIds, falling back to log scan"
            ),
            error=enum_error,
        ))

        scan = AttemptLog(
            step="scan-transfer-logs",
            success=False,
            details=f"Scanning transfer logs with span {self.config.chunk_span}",
        )
        try:
            via_logs = await self.scan_transfer_logs(wallet)
        except RpcError as exc:
            scan.error = str(exc)
            attempts.append(scan)
            raise

        if via_logs:
            scan.success = True
            scan.details = f"Recovered {len(via_logs)} tokenIds from logs"
        else:
            scan.error = "No tokenIds recovered from logs"
        if self.bisected_chunks:
            scan.details += (
                f" ({self.bisected_chunks} chunk(s) bisected, "
                f"{len(self.dropped_ranges)} range(s) dropped)"
            )
        attempts.append(scan)
        return via_logs


# ── Standalone CLI ──────────────────────────────────────────────────────


async def _main(wallet: str) -> List[int]:
    """Quick check: list token ids for a wallet using env configuration."""
    config = DeploymentConfig.from_env()
    attempts: List[AttemptLog] = []
    async with RpcClient.from_config(config) as rpc:
        token_ids = await PositionIndexer(rpc, config).discover(wallet, attempts)

    for a in attempts:
        print(f"  {'✅' if a.success else '⚠️ '} {a.step}: {a.details or ''} {a.error or ''}")
    print(f"  Token IDs: {token_ids}")
    return token_ids


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python position_indexer.py <wallet_address>")
        sys.exit(1)
    asyncio.run(_main(sys.argv[1]))
