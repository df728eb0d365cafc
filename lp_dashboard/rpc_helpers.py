#!/usr/bin/env python3
"""
RPC Helpers — ABI Encoding/Decoding and JSON-RPC Client
========================================================

Low-level EVM interaction primitives shared by position_indexer.py,
position_reader.py and reward_pricing.py:

  • Method selectors and event topics (keccak256 of the signature text)
  • ABI encoding (address, uint256) and word-level decoding
    (uint, signed intN, address, dynamic / bytes32 strings)
  • JSON-RPC client (eth_call, eth_blockNumber, eth_getLogs) over httpx,
    direct or through a forward proxy (CONNECT tunnel for https targets),
    honouring a NO_PROXY exclusion list

All constants reference the Ethereum ABI specification:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Q256:  2^256 — uint256 overflow boundary

The client never retries. Callers own the retry / fallback policy
(enumeration → log scan, chunk bisection, per-token isolation).
"""

import itertools
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx
from eth_utils import keccak

from lp_dashboard.errors import RpcError

logger = logging.getLogger(__name__)

# ── ABI Word Constants ──────────────────────────────────────────────────

ABI_WORD_BYTES = 32          # 1 ABI word = 32 bytes
ABI_WORD_HEX = 64            # 32 bytes × 2 hex chars = 64 hex characters
ADDRESS_HEX = 40             # 20 bytes × 2 = 40 hex characters
Q256 = 2 ** 256              # uint256 overflow boundary

ZERO_ADDRESS = "0x" + "0" * ADDRESS_HEX

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


# ── Selectors & Topics ──────────────────────────────────────────────────


def method_selector(signature: str) -> str:
    """First 4 bytes of keccak256(signature) as 8 hex chars (no 0x prefix).

    >>> method_selector("balanceOf(address)")
    '70a08231'
    """
    return keccak(text=signature).hex()[:8]


def event_topic(signature: str) -> str:
    """Full keccak256 of an event signature, 0x-prefixed (topic0 of a log)."""
    return "0x" + keccak(text=signature).hex()


SELECTORS: Dict[str, str] = {
    # Position manager (ERC-721 Enumerable + Algebra positions)
    "balanceOf": method_selector("balanceOf(address)"),
    "tokenOfOwnerByIndex": method_selector("tokenOfOwnerByIndex(address,uint256)"),
    "positions": method_selector("positions(uint256)"),
    # Algebra pool / factory / farming center
    "globalState": method_selector("globalState()"),
    "poolByPair": method_selector("poolByPair(address,address)"),
    "deposits": method_selector("deposits(uint256)"),
    # ERC-20 metadata
    "decimals": method_selector("decimals()"),
    "symbol": method_selector("symbol()"),
}

TRANSFER_TOPIC = event_topic("Transfer(address,address,uint256)")


# ── Hex Helpers ─────────────────────────────────────────────────────────


def strip_hex_prefix(data: str) -> str:
    """Remove a leading 0x and validate the remaining characters.

    Raises:
        ValueError: on non-hex characters or odd length.
    """
    if not isinstance(data, str):
        raise ValueError(f"Expected hex string, got {type(data).__name__}")
    raw = data[2:] if data[:2].lower() == "0x" else data
    if not _HEX_RE.match(raw):
        raise ValueError(f"Malformed hex data: {data[:20]}…")
    if len(raw) % 2:
        raise ValueError(f"Hex data has odd length ({len(raw)})")
    return raw


def normalize_address(address: str) -> str:
    """Lower-case, 0x-prefixed 20-byte address.

    Raises:
        ValueError: if the input is not exactly 40 hex characters.
    """
    raw = strip_hex_prefix(address)
    if len(raw) != ADDRESS_HEX:
        raise ValueError(f"Address must be 20 bytes, got {len(raw) // 2}: {address}")
    return "0x" + raw.lower()


def to_topic_address(address: str) -> str:
    """Address left-padded to a 32-byte log topic (0x-prefixed, lower-case)."""
    return "0x" + encode_address(address)


# ── ABI Encoding ────────────────────────────────────────────────────────


def encode_address(address: str) -> str:
    """ABI-encode an address as 32 bytes (left-padded, no 0x prefix).

    >>> encode_address('0x9ea4459c8DefBF561495d95414b9CF1E2242a3E2')
    '0000000000000000000000009ea4459c8defbf561495d95414b9cf1e2242a3e2'
    """
    return normalize_address(address)[2:].zfill(ABI_WORD_HEX)


def encode_uint(value: int) -> str:
    """ABI-encode a uint256 as 32-byte hex (no 0x prefix).

    >>> encode_uint(1)
    '0000000000000000000000000000000000000000000000000000000000000001'
    """
    if value < 0 or value >= Q256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, f"0{ABI_WORD_HEX}x")


def build_calldata(selector_name: str, *words: str) -> str:
    """0x + selector + pre-encoded argument words."""
    return "0x" + SELECTORS[selector_name] + "".join(words)


# ── ABI Decoding ────────────────────────────────────────────────────────


def decode_words(data: str) -> List[str]:
    """Split a hex payload into 64-char words, right-padding a short last word."""
    raw = strip_hex_prefix(data)
    return [
        raw[i:i + ABI_WORD_HEX].ljust(ABI_WORD_HEX, "0")
        for i in range(0, len(raw), ABI_WORD_HEX)
    ]


def decode_uint(word: str) -> int:
    """Interpret a word as an unsigned integer (empty word → 0)."""
    return int(word, 16) if word else 0


def decode_signed_int(word: str, bits: int = 256) -> int:
    """Two's-complement signed integer held in the low `bits` bits of a word.

    >>> decode_signed_int("f" * 64, 24)
    -1
    """
    if not 1 <= bits <= 256:
        raise ValueError(f"Bit width must be within 1..256, got {bits}")
    mask = (1 << bits) - 1
    raw = int(word, 16) & mask
    sign_bit = 1 << (bits - 1)
    return raw - (mask + 1) if raw & sign_bit else raw


def decode_address(word: str) -> str:
    """Address held in the last 20 bytes of a word (lower-case)."""
    return "0x" + word[-ADDRESS_HEX:].lower()


def decode_string(data: str) -> str:
    """Decode a string return value.

    Handles both standard dynamic strings (offset + length + data) and
    the bytes32 form some older token contracts use for symbol(): a
    payload no longer than one word is read as fixed bytes.

    Raises:
        ValueError: if offset / length point outside the payload.
    """
    raw = strip_hex_prefix(data)
    if not raw:
        return ""
    if len(raw) <= ABI_WORD_HEX:
        fixed = bytes.fromhex(raw.ljust(ABI_WORD_HEX, "0"))
        return fixed.decode("utf-8", errors="replace").rstrip("\x00")

    offset = int(raw[:ABI_WORD_HEX], 16)
    length_start = offset * 2
    if length_start + ABI_WORD_HEX > len(raw):
        raise ValueError(f"String offset {offset} outside payload")
    length = int(raw[length_start:length_start + ABI_WORD_HEX], 16)
    start = length_start + ABI_WORD_HEX
    end = start + length * 2
    if end > len(raw):
        raise ValueError(f"String length {length} exceeds payload")
    return bytes.fromhex(raw[start:end]).decode("utf-8", errors="replace").rstrip("\x00")


# ── Proxy Routing ───────────────────────────────────────────────────────


def should_bypass_proxy(target_url: str, no_proxy: Optional[str]) -> bool:
    """NO_PROXY matching: comma-separated host suffixes, `*` matches everything.

    `example.com` matches example.com and *.example.com; `.example.com`
    matches subdomains only.
    """
    if not no_proxy:
        return False
    try:
        hostname = (httpx.URL(target_url).host or "").lower()
    except httpx.InvalidURL:
        return False
    entries = [e.strip().lower() for e in no_proxy.split(",") if e.strip()]
    for entry in entries:
        if entry == "*" or hostname == entry:
            return True
        if entry.startswith("."):
            if hostname.endswith(entry):
                return True
        elif hostname.endswith(f".{entry}"):
            return True
    return False


# ── JSON-RPC Client ─────────────────────────────────────────────────────

DEFAULT_TIMEOUT = 20.0


class RpcClient:
    """
    Minimal async JSON-RPC 2.0 client for an EVM node.

    Transport:
      • direct connection when no proxy is configured (or NO_PROXY matches)
      • plain HTTP targets are forwarded through the proxy
      • HTTPS targets go through a CONNECT tunnel opened on the proxy,
        then TLS to the destination (httpx proxy transport)

    Every failure surfaces as RpcError; nothing is retried here.

    Usage:
        async with RpcClient("https://rpc.hyperliquid.xyz/evm") as rpc:
            latest = await rpc.block_number()
    """

    def __init__(
        self,
        rpc_url: str,
        proxy_url: Optional[str] = None,
        no_proxy: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        if proxy_url and not should_bypass_proxy(rpc_url, no_proxy):
            self.proxy_url: Optional[str] = proxy_url
        else:
            self.proxy_url = None
        self.request_count = 0
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "RpcClient":
        """Build a client from a DeploymentConfig."""
        return cls(
            config.rpc_url,
            proxy_url=config.proxy_url,
            no_proxy=config.no_proxy,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                proxy=self.proxy_url,
                transport=self._transport,
                trust_env=False,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def call(self, method: str, params: Sequence[Any]) -> Any:
        """
        POST one JSON-RPC envelope and return its `result`.

        Raises:
            RpcError: transport failure or timeout, non-2xx status,
                      invalid JSON, or a JSON-RPC `error` member.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        self.request_count += 1
        logger.debug("RPC %s #%d → %s", method, payload["id"], self.rpc_url)

        try:
            resp = await self._http().post(self.rpc_url, json=payload)
        except httpx.TimeoutException as exc:
            raise RpcError(f"RPC {method} timed out after {self.timeout}s", method) from exc
        except httpx.HTTPError as exc:
            raise RpcError(f"RPC {method} transport failure: {exc}", method) from exc

        if not 200 <= resp.status_code < 300:
            raise RpcError(f"RPC {method} failed with status {resp.status_code}", method)

        try:
            body = resp.json()
        except ValueError as exc:
            raise RpcError(f"RPC {method} returned invalid JSON: {exc}", method) from exc

        if not isinstance(body, dict):
            raise RpcError(f"RPC {method} returned malformed payload", method)
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcError(message or f"RPC {method} error", method)
        return body.get("result")

    async def eth_call(self, to: str, data: str) -> str:
        """
        Execute eth_call against the latest block.

        Returns:
            Hex response string (without 0x prefix).

        Raises:
            RpcError: on RPC failure or an empty `0x` result (revert /
                      missing method on nodes that do not raise).
        """
        result = await self.call("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str) or len(result) <= 2:
            raise RpcError("Empty response — contract may not implement this method", "eth_call")
        return result[2:] if result[:2].lower() == "0x" else result

    async def block_number(self) -> int:
        """Latest block number."""
        result = await self.call("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as exc:
            raise RpcError(f"eth_blockNumber returned {result!r}", "eth_blockNumber") from exc

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[Optional[str]],
    ) -> List[Dict[str, Any]]:
        """eth_getLogs over an inclusive block range."""
        result = await self.call("eth_getLogs", [{
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": list(topics),
        }])
        if not isinstance(result, list):
            raise RpcError("eth_getLogs returned a non-list result", "eth_getLogs")
        return result
