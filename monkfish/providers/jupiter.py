"""
Jupiter token list provider for Solana.

The full list (``/all``) carries every token Jupiter knows about, verified or
not. It is only ever downloaded in bulk; the token directory owns caching.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .base import TokenListProvider
from ..config import settings


@dataclass
class JupiterToken:
    """Parsed Jupiter token metadata."""

    address: str  # Mint address (Base58)
    symbol: str
    name: str = ""
    decimals: Optional[int] = None
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "JupiterToken":
        """Parse a token from Jupiter API response."""
        return cls(
            address=str(data.get("address") or ""),
            symbol=str(data.get("symbol") or ""),
            name=str(data.get("name") or ""),
            decimals=data.get("decimals"),
            tags=data.get("tags") or [],
        )


class JupiterTokenListProvider(TokenListProvider):
    """
    Downloads the public Jupiter token list.

    No API key required. Errors are raised to the caller, which decides how to
    degrade.
    """

    name = "jupiter"

    def __init__(
        self,
        *,
        url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url or settings.token_list_url
        self.timeout_s = timeout_s or settings.http_timeout_seconds
        self._transport = transport

    async def ready(self) -> bool:
        return bool(self.url)

    async def fetch_all(self) -> List[JupiterToken]:
        """
        Fetch the complete token list.

        Entries without an address or symbol are skipped; order is preserved
        because the directory keeps the first address seen for a symbol.

        Raises:
            httpx.HTTPError: transport failure, timeout or non-2xx status.
            ValueError: the body is not a JSON array.
        """
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            resp = await client.get(self.url, headers={"accept": "application/json"})
            resp.raise_for_status()
            payload = resp.json()

        if not isinstance(payload, list):
            raise ValueError("Token list response is not a JSON array")

        tokens: List[JupiterToken] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            token = JupiterToken.from_api(item)
            if token.address and token.symbol:
                tokens.append(token)
        return tokens
