"""
Best-effort symbol -> mint directory for Solana tokens.

The mapping is seeded from a small static safety-net table, refreshed lazily
from the public token list and topped up from market-data search results.
Network failures never escape this module: every tier degrades to "not found"
so resolution can move on to the next fallback.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Mapping, Optional

from ..config import settings
from ..providers.base import MarketDataProvider, TokenListProvider
from ..providers.dexscreener import MarketPair
from ..providers.jupiter import JupiterTokenListProvider
from .address import is_valid_address

logger = logging.getLogger(__name__)


# Well-known mints that must resolve even when the token list is unreachable.
SAFETY_NET_TOKENS: Dict[str, str] = {
    "SOL": "So11111111111111111111111111111111111111112",
    "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "USDT": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
    "BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
    "JUP": "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN",
    "WIF": "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm",
}


class TokenDirectory:
    """
    In-memory, TTL-refreshed mapping from uppercased symbol to mint address.

    Refreshes happen on access (no timer) and are serialized by a lock, so two
    concurrent callers inside the TTL window trigger a single download.
    """

    def __init__(
        self,
        token_list: Optional[TokenListProvider] = None,
        market_data: Optional[MarketDataProvider] = None,
        *,
        chain: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        retry_seconds: Optional[float] = None,
        static_tokens: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.token_list = token_list or JupiterTokenListProvider()
        self.market_data = market_data
        self.chain = (chain or settings.market_data_chain).lower()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.token_directory_ttl_seconds
        self.retry_seconds = retry_seconds if retry_seconds is not None else settings.token_directory_retry_seconds
        self._static = {k.upper(): v for k, v in (static_tokens if static_tokens is not None else SAFETY_NET_TOKENS).items()}
        self._clock = clock

        self._entries: Dict[str, str] = {}
        self._last_refresh: Optional[float] = None
        self._last_failure: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def last_refresh(self) -> Optional[float]:
        return self._last_refresh

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, now: float, ttl: float) -> bool:
        if not self._entries:
            return False
        if self._last_refresh is not None and now - self._last_refresh < ttl:
            return True
        # Only the static seed is loaded; wait out the retry window after a failure
        return self._last_failure is not None and now - self._last_failure < self.retry_seconds

    async def ensure_fresh(self, ttl: Optional[float] = None) -> None:
        """Download the token list if the mapping is empty or older than ``ttl``."""
        ttl = self.ttl_seconds if ttl is None else ttl
        async with self._lock:
            now = self._clock()
            if self._is_fresh(now, ttl):
                return

            try:
                tokens = await self.token_list.fetch_all()
            except Exception as exc:  # noqa: BLE001
                self._last_failure = now
                if not self._entries:
                    self._entries = dict(self._static)
                logger.warning(
                    f"Token list refresh failed, keeping {len(self._entries)} cached entries: {exc}"
                )
                return

            entries: Dict[str, str] = {}
            for token in tokens:
                # First address seen for a symbol wins
                entries.setdefault(token.symbol.upper(), token.address)
            entries.update(self._static)

            self._entries = entries
            self._last_refresh = now
            self._last_failure = None
            logger.info(f"Token directory refreshed with {len(entries)} symbols")

    def lookup(self, symbol: str) -> Optional[str]:
        """Case-insensitive symbol lookup against the current mapping."""
        if not symbol:
            return None
        return self._entries.get(symbol.strip().upper())

    def remember(self, symbol: str, address: str) -> None:
        """Cache an address learned outside the token list."""
        if symbol and address:
            self._entries[symbol.strip().upper()] = address

    async def search_external(self, symbol: str) -> Optional[str]:
        """
        Ask the market-data API for ``symbol`` on the directory's chain.

        When several pairs match, the one with the deepest USD liquidity wins.
        Returns None on any failure.
        """
        if self.market_data is None or not symbol:
            return None

        target = symbol.strip().upper()
        try:
            pairs = await self.market_data.search_pairs(target)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Market-data search failed for {target}: {exc}")
            return None

        candidates = [
            p for p in pairs
            if p.chain_id.lower() == self.chain
            and p.base_symbol.upper() == target
            and is_valid_address(p.base_address)
        ]
        if not candidates:
            return None

        best = max(candidates, key=lambda p: p.liquidity_usd or 0.0)
        return best.base_address

    async def resolve_symbol(self, symbol: str) -> Optional[str]:
        """Directory lookup with market-data search as the last tier."""
        await self.ensure_fresh()
        address = self.lookup(symbol)
        if address:
            return address

        address = await self.search_external(symbol)
        if address:
            self.remember(symbol, address)
        return address

    async def market_snapshot(self, mint: str) -> Optional[MarketPair]:
        """Most liquid pair for ``mint`` on the directory's chain, if any."""
        if self.market_data is None or not mint:
            return None

        try:
            pairs = await self.market_data.token_pairs(mint)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Market-data token lookup failed for {mint}: {exc}")
            return None

        candidates = [p for p in pairs if p.chain_id.lower() == self.chain and p.base_address == mint]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.liquidity_usd or 0.0)
