"""Async client for the public DexScreener market-data API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .base import MarketDataProvider
from ..config import settings


def _safe_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass
class MarketPair:
    """One trading pair as reported by the market-data API."""

    chain_id: str
    base_symbol: str
    base_address: str
    price_usd: Optional[float] = None
    price_native: Optional[float] = None
    liquidity_usd: Optional[float] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MarketPair":
        base = data.get("baseToken") or {}
        liquidity = data.get("liquidity") or {}
        return cls(
            chain_id=str(data.get("chainId") or ""),
            base_symbol=str(base.get("symbol") or ""),
            base_address=str(base.get("address") or ""),
            price_usd=_safe_float(data.get("priceUsd")),
            price_native=_safe_float(data.get("priceNative")),
            liquidity_usd=_safe_float(liquidity.get("usd")),
        )


class DexScreenerProvider(MarketDataProvider):
    """Thin wrapper around the ``/search`` and ``/tokens/{mint}`` endpoints."""

    name = "dexscreener"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.market_data_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.http_timeout_seconds
        self._transport = transport

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def _get_pairs(self, path: str, params: Optional[Dict[str, str]] = None) -> List[MarketPair]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            resp = await client.get(path, params=params, headers={"accept": "application/json"})
            resp.raise_for_status()
            data = resp.json()

        pairs = data.get("pairs") if isinstance(data, dict) else None
        return [MarketPair.from_api(p) for p in pairs or [] if isinstance(p, dict)]

    async def search_pairs(self, query: str) -> List[MarketPair]:
        """Search pairs by free text (symbol, name or address).

        Raises httpx errors and ``ValueError`` for malformed bodies.
        """
        return await self._get_pairs("/search", params={"q": query})

    async def token_pairs(self, mint: str) -> List[MarketPair]:
        """All pairs trading the given token address."""
        return await self._get_pairs(f"/tokens/{mint}")
