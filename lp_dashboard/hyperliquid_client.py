"""
Hyperliquid Info API Client — alternate position data source
============================================================
Endpoint: POST https://api.hyperliquid.xyz/info
Body:     {"type": "spotUserState", "user": "0x..."}

No credentials required. The response shape is not assumed here; it is
handed as-is to lp_dashboard.payload_extractor.
"""

import logging
from typing import Any, Optional

import httpx

from lp_dashboard.central_config import DEFAULT_INFO_URL
from lp_dashboard.errors import DataSourceError
from lp_dashboard.rpc_helpers import DEFAULT_TIMEOUT, should_bypass_proxy

logger = logging.getLogger(__name__)

SOURCE_LABEL = "Hyperliquid info API"


class HyperliquidInfoClient:
    """Thin async client for the Hyperliquid info endpoint."""

    def __init__(
        self,
        info_url: str = DEFAULT_INFO_URL,
        proxy_url: Optional[str] = None,
        no_proxy: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.info_url = info_url
        self.timeout = timeout
        self.proxy_url = None if should_bypass_proxy(info_url, no_proxy) else proxy_url
        self._transport = transport

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "HyperliquidInfoClient":
        return cls(
            config.info_url,
            proxy_url=config.proxy_url,
            no_proxy=config.no_proxy,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def fetch_user_state(self, wallet: str) -> Any:
        """
        Spot user state for a wallet, as decoded JSON.

        Raises:
            DataSourceError: transport failure, non-2xx status (status kept)
                             or a body that is not JSON.
        """
        body = {"type": "spotUserState", "user": wallet}
        logger.debug("POST %s spotUserState %s", self.info_url, wallet)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            proxy=self.proxy_url,
            transport=self._transport,
            trust_env=False,
        ) as client:
            try:
                response = await client.post(self.info_url, json=body)
            except httpx.HTTPError as exc:
                raise DataSourceError(f"{SOURCE_LABEL} unreachable: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise DataSourceError(
                f"API responded with {response.status_code}",
                status_code=response.status_code,
                payload=response.text,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DataSourceError(f"{SOURCE_LABEL} returned invalid JSON: {exc}") from exc
