"""
Turn free-form asset input into a canonical address for the Koi backend.

Accepted forms:
- ``chain:address`` or ``address:chain``  -> the address, with a chain hint
- ``chain:symbol`` or ``symbol:chain``    -> resolved by the backend registry
- raw EVM / Solana address                -> returned as-is
- bare symbol                             -> backend registry, else suggestions

Parsing is a pure function producing one input shape; the resolution rules are
applied to that shape afterwards. The resolver returns plain text only, callers
must escape anything they render.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

import httpx
from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..clients.models import ResolveOption, ResolveResponse
from ..errors import BackendError, TRANSPORT_FAILURE_STATUS
from .address import (
    CHAIN_HINTS,
    is_valid_address,
    known_chain,
    looks_like_address,
    looks_like_symbol,
    normalize_chain,
)
from .token_directory import TokenDirectory

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^([a-z0-9_\-]+):(.*)$", re.IGNORECASE)

# Chains covered by the token directory (Solana token list)
_DIRECTORY_CHAINS = {None, "sol"}

MAX_BACKEND_OPTIONS = 5
SUGGESTED_CHAIN_COUNT = 3


class ResolutionReason(str, Enum):
    """Why an input could not be turned into an address."""

    AMBIGUOUS = "ambiguous"
    UNKNOWN = "unknown"
    INVALID = "invalid"
    BACKEND_ERROR = "backend_error"


@dataclass
class ResolvedAsset:
    address: str
    chain: Optional[str] = None
    note: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


@dataclass
class ResolutionFailure:
    reason: ResolutionReason
    message: str
    suggestions: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False


Resolution = Union[ResolvedAsset, ResolutionFailure]


# =============================================================================
# Input shapes
# =============================================================================

@dataclass(frozen=True)
class AddressWithChain:
    address: str
    chain: str


@dataclass(frozen=True)
class SymbolWithChain:
    symbol: str
    chain: str

    @property
    def qualified(self) -> str:
        return f"{self.symbol}:{self.chain}"


@dataclass(frozen=True)
class RawAddress:
    address: str


@dataclass(frozen=True)
class BareSymbol:
    symbol: str


@dataclass(frozen=True)
class Neither:
    text: str
    chain: Optional[str] = None


ParsedAsset = Union[AddressWithChain, SymbolWithChain, RawAddress, BareSymbol, Neither]


def parse_asset_input(raw: str) -> ParsedAsset:
    """Classify user input without any I/O."""
    text = (raw or "").strip()

    match = _PREFIX_RE.match(text)
    if match:
        left, rest = match.group(1), match.group(2).strip()
        chain = known_chain(left)
        if chain is None:
            # "usdc:sol" names the chain on the right
            reverse = known_chain(rest)
            if reverse is not None:
                chain, rest = reverse, left
            else:
                chain = normalize_chain(left)

        if is_valid_address(rest):
            return AddressWithChain(address=rest, chain=chain)
        if looks_like_symbol(rest):
            return SymbolWithChain(symbol=rest, chain=chain)
        return Neither(text=text, chain=chain)

    if is_valid_address(text):
        return RawAddress(address=text)
    if looks_like_symbol(text):
        return BareSymbol(symbol=text)
    return Neither(text=text)


def build_chain_suggestions(symbol: str, count: int = SUGGESTED_CHAIN_COUNT) -> List[str]:
    """``symbol:chain`` for the first ``count`` chain hints, in priority order."""
    sym = symbol.lower()
    return [f"{sym}:{chain}" for chain in CHAIN_HINTS[:count]]


def _format_option(option: Union[str, ResolveOption], symbol: str) -> str:
    if isinstance(option, str):
        return option
    return f"{option.symbol or symbol}:{option.chain or '?'}"


def _backend_unavailable(error: BackendError) -> bool:
    status = error.status if error.status is not None else TRANSPORT_FAILURE_STATUS
    return status == TRANSPORT_FAILURE_STATUS or status >= 500


# =============================================================================
# Resolver
# =============================================================================

class AssetResolver:
    """
    Resolve one asset token into a ``ResolvedAsset`` or ``ResolutionFailure``.

    ``backend_url`` enables the Koi registry (``GET /api/resolve``). Calls to it
    are single-attempt and unauthenticated. A ``TokenDirectory`` can be wired in
    as the public-data fallback for Solana symbols when the backend is not
    configured or not reachable.
    """

    def __init__(
        self,
        backend_url: Optional[str] = None,
        *,
        directory: Optional[TokenDirectory] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.backend_url = (backend_url or "").rstrip("/") or None
        self.directory = directory
        self.timeout_s = timeout_s or default_settings.http_timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        *,
        directory: Optional[TokenDirectory] = None,
    ) -> "AssetResolver":
        config = config or default_settings
        return cls(
            config.koi_api_url or None,
            directory=directory,
            timeout_s=config.http_timeout_seconds,
        )

    async def resolve(self, raw: str) -> Resolution:
        parsed = parse_asset_input(raw)

        if isinstance(parsed, AddressWithChain):
            return ResolvedAsset(
                address=parsed.address,
                chain=parsed.chain,
                note="address provided with chain hint",
            )
        if isinstance(parsed, SymbolWithChain):
            return await self._resolve_symbol_with_chain(parsed)
        if isinstance(parsed, RawAddress):
            return ResolvedAsset(address=parsed.address, note="address provided")
        if isinstance(parsed, BareSymbol):
            return await self._resolve_bare_symbol(parsed)

        if parsed.chain is not None:
            return ResolutionFailure(
                ResolutionReason.INVALID,
                "Expected an address or symbol after the chain hint.",
            )
        if looks_like_address(parsed.text):
            return ResolutionFailure(
                ResolutionReason.INVALID,
                "Address format looks invalid. Paste the full canonical address.",
            )
        return ResolutionFailure(ResolutionReason.UNKNOWN, "Could not interpret the asset input.")

    async def _resolve_symbol_with_chain(self, parsed: SymbolWithChain) -> Resolution:
        asset = parsed.qualified

        if not self.backend_url:
            hit = await self._from_directory(parsed.symbol, parsed.chain)
            if hit is not None:
                return hit
            return ResolutionFailure(
                ResolutionReason.AMBIGUOUS,
                f"Need to resolve {asset} via backend.",
                [asset],
            )

        try:
            data = await self._query_backend(asset)
        except BackendError as exc:
            if _backend_unavailable(exc):
                hit = await self._from_directory(parsed.symbol, parsed.chain)
                if hit is not None:
                    return hit
            return ResolutionFailure(ResolutionReason.BACKEND_ERROR, exc.message, [asset])

        if data.ok and data.address:
            if not is_valid_address(data.address):
                return ResolutionFailure(
                    ResolutionReason.BACKEND_ERROR,
                    "Backend returned an address in an unsupported format.",
                    [asset],
                )
            return ResolvedAsset(
                address=data.address,
                chain=data.chain or parsed.chain,
                note="resolved via registry",
            )

        return ResolutionFailure(
            ResolutionReason.BACKEND_ERROR,
            data.error or "Backend did not return a valid resolution.",
            [asset],
        )

    async def _resolve_bare_symbol(self, parsed: BareSymbol) -> Resolution:
        symbol = parsed.symbol

        if not self.backend_url:
            hit = await self._from_directory(symbol, None)
            if hit is not None:
                return hit
            return ResolutionFailure(
                ResolutionReason.AMBIGUOUS,
                "Symbol alone can exist on multiple chains. Use symbol:chain or paste an address.",
                build_chain_suggestions(symbol),
            )

        try:
            data = await self._query_backend(symbol)
        except BackendError as exc:
            if _backend_unavailable(exc):
                hit = await self._from_directory(symbol, None)
                if hit is not None:
                    return hit
            return ResolutionFailure(ResolutionReason.BACKEND_ERROR, exc.message)

        if data.ok and data.address:
            if not is_valid_address(data.address):
                return ResolutionFailure(
                    ResolutionReason.BACKEND_ERROR,
                    "Backend returned an address in an unsupported format.",
                )
            note = "resolved (disambiguated) via registry" if data.disambiguated else "resolved via registry"
            return ResolvedAsset(address=data.address, chain=data.chain, note=note)

        if data.options:
            return ResolutionFailure(
                ResolutionReason.AMBIGUOUS,
                data.error or "Symbol exists on multiple chains.",
                [_format_option(o, symbol) for o in data.options[:MAX_BACKEND_OPTIONS]],
            )

        return ResolutionFailure(
            ResolutionReason.UNKNOWN,
            data.error or "Symbol not found in registry.",
        )

    async def _from_directory(self, symbol: str, chain: Optional[str]) -> Optional[ResolvedAsset]:
        if self.directory is None or chain not in _DIRECTORY_CHAINS:
            return None
        address = await self.directory.resolve_symbol(symbol)
        if not address:
            return None
        return ResolvedAsset(address=address, chain="sol", note="resolved via token directory")

    async def _query_backend(self, asset: str) -> ResolveResponse:
        """Single GET against the registry; every failure becomes a BackendError."""
        path = "/api/resolve"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.get(
                    f"{self.backend_url}{path}",
                    params={"asset": asset},
                    headers={"accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            logger.warning(f"Resolve request timed out for {asset!r}")
            raise BackendError("Backend resolve timed out", status=TRANSPORT_FAILURE_STATUS, path=path) from exc
        except httpx.RequestError as exc:
            logger.warning(f"Resolve request failed for {asset!r}: {exc}")
            raise BackendError(
                str(exc) or "Backend resolve error",
                status=TRANSPORT_FAILURE_STATUS,
                path=path,
            ) from exc

        try:
            payload = resp.json() if resp.content else {}
        except ValueError as exc:
            raise BackendError(
                f"Non-JSON response: {resp.text[:200]}",
                status=resp.status_code,
                path=path,
            ) from exc

        if not resp.is_success:
            error = payload.get("error") if isinstance(payload, dict) else None
            raise BackendError(
                error if isinstance(error, str) and error else f"HTTP {resp.status_code}",
                status=resp.status_code,
                path=path,
            )

        try:
            return ResolveResponse.model_validate(payload)
        except ValidationError as exc:
            raise BackendError("Malformed resolve response", status=resp.status_code, path=path) from exc
