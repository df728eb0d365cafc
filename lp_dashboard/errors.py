"""
Error Taxonomy — Typed Failures for Discovery and Resolution
=============================================================

Every failure the engine can produce maps to one of these types, so
callers can decide at a well-defined boundary whether to record an
AttemptLog entry, skip a token id, or fail the whole request.

  • RpcError            — transport / JSON-RPC failure (non-fatal per unit)
  • PoolNotFoundError   — no pool for a position (fatal to that token id)
  • PositionDecodeError — implausible positions() payload (fatal to that token id)
  • InvalidWalletError  — malformed input, raised before any network call
  • DataSourceError     — fallback HTTP source failed (request-level)
"""


class RpcError(RuntimeError):
    """JSON-RPC call failed: connect error, timeout, HTTP status, bad JSON or RPC error."""

    def __init__(self, message: str, method: str = ""):
        super().__init__(message)
        self.method = method


class PoolNotFoundError(RuntimeError):
    """Neither the farming registry nor the factory knows a pool for the position."""


class PositionDecodeError(ValueError):
    """positions(tokenId) returned data that fits no known field layout."""


class InvalidWalletError(ValueError):
    """Wallet address does not match ^0x[0-9a-fA-F]{40}$."""


class DataSourceError(RuntimeError):
    """Alternate (non-RPC) data source unreachable or answered non-2xx."""

    def __init__(self, message: str, status_code: int = 502, payload: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload
