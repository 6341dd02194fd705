"""Helpers for normalizing chain hints and recognizing address/symbol shapes."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional

_BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_SYMBOL_RE = re.compile(r"^[A-Za-z]{2,10}$")
_ADDRESSY_RE = re.compile(r"[A-Za-z0-9]{20,}")

# Chain hints users may type, in suggestion priority order.
CHAIN_HINTS = ("sol", "eth", "base", "polygon", "arbitrum", "bsc")

_CHAIN_ALIASES = {
    "sol": "sol",
    "solana": "sol",
    "eth": "eth",
    "ethereum": "eth",
    "mainnet": "eth",
    "base": "base",
    "polygon": "polygon",
    "matic": "polygon",
    "arbitrum": "arbitrum",
    "arb": "arbitrum",
    "bsc": "bsc",
    "bnb": "bsc",
}


def normalize_chain(chain: str) -> str:
    """Collapse user-provided chain names into chain hints; unknown names are only lower-cased."""

    slug = chain.lower().strip()
    return _CHAIN_ALIASES.get(slug, slug)


def known_chain(chain: Optional[str]) -> Optional[str]:
    """Return the chain hint for a recognized chain name, otherwise None."""

    if not chain:
        return None
    return _CHAIN_ALIASES.get(chain.lower().strip())


def is_valid_evm_address(address: str) -> bool:
    return bool(address) and bool(_EVM_ADDRESS_RE.fullmatch(address))


@lru_cache(maxsize=1024)
def is_valid_solana_address(address: str) -> bool:
    if not address:
        return False
    length = len(address)
    if length < 32 or length > 44:
        return False
    return all(ch in _BASE58_ALPHABET for ch in address)


def is_valid_address(address: str) -> bool:
    """True if the string has the shape of an address on any supported chain."""

    return is_valid_evm_address(address) or is_valid_solana_address(address)


def looks_like_symbol(text: str) -> bool:
    """Ticker heuristic: 2-10 ASCII letters."""

    return bool(_SYMBOL_RE.fullmatch(text))


def looks_like_address(text: str) -> bool:
    """Loose, chain-agnostic check for an address-like run of characters."""

    return bool(_ADDRESSY_RE.search(text))


__all__ = [
    "CHAIN_HINTS",
    "is_valid_address",
    "is_valid_evm_address",
    "is_valid_solana_address",
    "known_chain",
    "looks_like_address",
    "looks_like_symbol",
    "normalize_chain",
]
