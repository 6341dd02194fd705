from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .dexscreener import MarketPair
    from .jupiter import JupiterToken


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is configured to serve requests"""
        pass


class TokenListProvider(Provider):
    """Bulk symbol/address feed for one chain"""

    @abstractmethod
    async def fetch_all(self) -> List["JupiterToken"]:
        """Download every token in the list, in feed order"""
        pass


class MarketDataProvider(Provider):
    """Trading-pair data (prices, liquidity) keyed by symbol or token address"""

    @abstractmethod
    async def search_pairs(self, query: str) -> List["MarketPair"]:
        """Pairs matching a free-text query"""
        pass

    @abstractmethod
    async def token_pairs(self, mint: str) -> List["MarketPair"]:
        """Pairs trading the given token address"""
        pass
