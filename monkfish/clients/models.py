"""
Caller identity and response shapes of the Koi backend.

Response models accept the backend's camelCase keys, tolerate unknown fields and
default ``ok`` to True for endpoints that omit it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class CallerIdentity:
    """Who a backend call is made for; never persisted."""

    user_id: Union[str, int]
    command: Optional[str] = None
    trace_id: Optional[str] = None

    @property
    def user_key(self) -> str:
        return str(self.user_id)

    def with_command(self, command: str) -> "CallerIdentity":
        return replace(self, command=command)


class KoiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    ok: bool = True


# Resolution
class ResolveOption(KoiModel):
    symbol: Optional[str] = None
    chain: Optional[str] = None


class ResolveResponse(KoiModel):
    ok: bool = False
    address: Optional[str] = None
    chain: Optional[str] = None
    disambiguated: bool = False
    error: Optional[str] = None
    options: List[Union[str, ResolveOption]] = Field(default_factory=list)


# Auth
class TokenResponse(KoiModel):
    token: Optional[str] = None
    access_token: Optional[str] = Field(default=None, alias="accessToken")

    @property
    def bearer(self) -> Optional[str]:
        return self.token or self.access_token


# Quote / Swap
class QuoteRisk(KoiModel):
    honeypot: Optional[bool] = None
    notes: Optional[str] = None


class QuoteResponse(KoiModel):
    est_out: float = Field(alias="estOut")
    impact_pct: Optional[float] = Field(default=None, alias="impactPct")
    hops: Optional[int] = None
    risk: Optional[QuoteRisk] = None
    source: Optional[str] = None


class SwapResponse(KoiModel):
    tx_id: Optional[str] = Field(default=None, alias="txId")
    estimated_out: Optional[float] = Field(default=None, alias="estimatedOut")


class CadenceSwapResponse(KoiModel):
    transaction_signature: Optional[str] = Field(default=None, alias="transactionSignature")
    tx: Optional[str] = None
    est_out: Optional[float] = Field(default=None, alias="estOut")
    quote: Optional[Dict[str, Any]] = None


# Wallets
class WalletCreateResponse(KoiModel):
    wallet_id: str = Field(alias="walletId")
    address: Optional[str] = None
    chain: Optional[str] = None


class WalletAddressResponse(KoiModel):
    address: str
    chain: str
    wallet_id: Optional[str] = Field(default=None, alias="walletId")


class Balance(KoiModel):
    symbol: str
    chain: str
    amount: str
    address: Optional[str] = None


class WalletBalanceResponse(KoiModel):
    balances: List[Balance] = Field(default_factory=list)


# Algos / Allocations
class Algo(KoiModel):
    id: str
    name: str
    status: Optional[str] = None


class AlgosListResponse(KoiModel):
    algos: List[Algo] = Field(default_factory=list)


class Allocation(KoiModel):
    algo_id: str = Field(alias="algoId")
    percent: Optional[float] = None


class AllocationsGetResponse(KoiModel):
    allocations: List[Allocation] = Field(default_factory=list)


class AllocationToggleResponse(KoiModel):
    allocation_id: Optional[str] = Field(default=None, alias="allocationId")
    algo_code: Optional[str] = Field(default=None, alias="algoCode")
    status: Optional[str] = None
