"""
Project Configuration — version, deployment addresses, runtime knobs
=====================================================================

`DeploymentConfig` is passed explicitly into the indexer, reader and
reward pricer, so a second deployment (or a test fixture) only needs a
different instance, never patched module constants.

Environment variables (see DeploymentConfig.from_env):
  HYPEREVM_RPC            JSON-RPC endpoint
  HTTPS_PROXY / HTTP_PROXY forward proxy (lower-case variants accepted)
  NO_PROXY                comma-separated host suffixes that skip the proxy
  KITTEN_TOKEN            reward token address (zero → reward pricing off)
  USD0_TOKEN              stable settlement token address
  START_BLOCK, CHUNK_SPAN transfer-log scan window
  RPC_TIMEOUT             per-call timeout in seconds
  POSITION_CONCURRENCY    token ids resolved in parallel (1 = sequential)
  HYPERLIQUID_INFO_URL    alternate JSON data source
"""

import os
import re
from dataclasses import dataclass, field, replace
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from typing import Mapping, Optional, Tuple

from lp_dashboard.dex_registry import DEFAULT_DEX, DEFAULT_NETWORK, DEX_REGISTRY, get_deployment
from lp_dashboard.rpc_helpers import ZERO_ADDRESS
from lp_dashboard.stablecoins import STABLE_MARKERS

# Version comes from pyproject.toml
try:
    PROJECT_VERSION = version("lp-dashboard")
except PackageNotFoundError:
    # Not installed (dev checkout): read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "LP Dashboard"

DEFAULT_INFO_URL = "https://api.hyperliquid.xyz/info"

_DEFAULTS = get_deployment(DEFAULT_DEX, DEFAULT_NETWORK)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip(), 0)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _first_env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class DeploymentConfig:
    """Everything deployment-specific the position engine needs."""

    rpc_url: str = _DEFAULTS["rpc_url"]
    position_manager: str = _DEFAULTS["position_manager"].lower()
    factory: str = _DEFAULTS["factory"].lower()
    farming_center: Optional[str] = _DEFAULTS["farming_center"].lower()

    # Reward pricing (zero address disables it)
    reward_token: str = ZERO_ADDRESS
    stable_token: str = ZERO_ADDRESS
    reward_symbol: str = DEX_REGISTRY[DEFAULT_DEX]["reward_symbol"]
    stable_markers: Tuple[str, ...] = field(default=STABLE_MARKERS)

    # Transfer-log scan window
    start_block: int = 0
    chunk_span: int = 800

    # Transport
    proxy_url: Optional[str] = None
    no_proxy: Optional[str] = None
    timeout_seconds: float = 20.0

    # Token ids resolved concurrently (1 = strictly sequential)
    max_concurrency: int = 1

    info_url: str = DEFAULT_INFO_URL

    def __post_init__(self):
        if self.chunk_span <= 0:
            raise ValueError(f"chunk_span must be positive, got {self.chunk_span}")
        if self.start_block < 0:
            raise ValueError(f"start_block must be non-negative, got {self.start_block}")
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

    @property
    def reward_pricing_enabled(self) -> bool:
        return self.reward_token != ZERO_ADDRESS and self.stable_token != ZERO_ADDRESS

    @property
    def source_label(self) -> str:
        return f"HyperEVM RPC {self.rpc_url}"

    def with_overrides(self, **changes) -> "DeploymentConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeploymentConfig":
        """
        Build a config from environment variables, falling back to the
        registry defaults for anything unset.

        Raises:
            ValueError: if a numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            rpc_url=env.get("HYPEREVM_RPC") or defaults.rpc_url,
            position_manager=defaults.position_manager,
            factory=defaults.factory,
            farming_center=defaults.farming_center,
            reward_token=(env.get("KITTEN_TOKEN") or ZERO_ADDRESS).lower(),
            stable_token=(env.get("USD0_TOKEN") or ZERO_ADDRESS).lower(),
            start_block=_env_int(env, "START_BLOCK", defaults.start_block),
            chunk_span=_env_int(env, "CHUNK_SPAN", defaults.chunk_span),
            proxy_url=_first_env(env, "HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy"),
            no_proxy=_first_env(env, "NO_PROXY", "no_proxy"),
            timeout_seconds=_env_float(env, "RPC_TIMEOUT", defaults.timeout_seconds),
            max_concurrency=_env_int(env, "POSITION_CONCURRENCY", defaults.max_concurrency),
            info_url=env.get("HYPERLIQUID_INFO_URL") or DEFAULT_INFO_URL,
        )
