"""
Async client for the Koi trading/wallet backend.

Every call runs under a per-user bearer token issued by the backend
(``POST /api/auth/token``) and carries attribution headers. Transient failures
(no response, 401, 429, 5xx) are retried exactly once after a short jittered
backoff, with a freshly issued token.

Example usage:
    async with KoiGateway("https://koi.example") as koi:
        me = CallerIdentity(user_id=42, trace_id="abc123")
        quote = await koi.quote("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 0.5, me)
"""

from __future__ import annotations

import asyncio
import random
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional, Type, TypeVar, Union

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ..auth.token_cache import UserTokenCache
from ..config import settings
from ..errors import (
    AuthError,
    BackendError,
    ConfigError,
    TRANSPORT_FAILURE_STATUS,
    is_transient,
)
from .models import (
    AlgosListResponse,
    AllocationToggleResponse,
    AllocationsGetResponse,
    CadenceSwapResponse,
    CallerIdentity,
    QuoteResponse,
    SwapResponse,
    TokenResponse,
    WalletAddressResponse,
    WalletBalanceResponse,
    WalletCreateResponse,
)

logger = structlog.stdlib.get_logger("koi")

ModelT = TypeVar("ModelT", bound=BaseModel)
Amount = Union[Decimal, float, int]

MAX_ATTEMPTS = 2


def _parse_json(resp: httpx.Response) -> Any:
    """Decoded body, ``{}`` for an empty one, None when it is not JSON."""
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        return None


def _payload_error(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _error_message(payload: Any, resp: httpx.Response) -> str:
    message = _payload_error(payload)
    if message:
        return message
    text = resp.text.strip()
    return text[:200] if text else f"HTTP {resp.status_code}"


def _error_code(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and payload.get("code") is not None:
        return str(payload["code"])
    return None


class KoiGateway:
    """Authenticated, attributed and retried access to the Koi backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token_cache: Optional[UserTokenCache] = None,
        token_path: Optional[str] = None,
        bot_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        retry_base_delay_s: Optional[float] = None,
        retry_jitter_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        configured = base_url or settings.koi_api_url
        if not configured:
            raise ConfigError("KOI_API_URL not set")

        self.base_url = configured.rstrip("/")
        self.token_cache = token_cache or UserTokenCache()
        self.token_path = token_path or settings.koi_auth_token_path
        self.bot_id = settings.bot_id if bot_id is None else bot_id
        self.timeout_s = timeout_s or settings.http_timeout_seconds
        self.retry_base_delay_s = (
            settings.koi_retry_base_delay_ms / 1000 if retry_base_delay_s is None else retry_base_delay_s
        )
        self.retry_jitter_s = settings.koi_retry_jitter_ms / 1000 if retry_jitter_s is None else retry_jitter_s

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "KoiGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Core request path
    # ------------------------------------------------------------------

    def _backoff_delay(self) -> float:
        return self.retry_base_delay_s + random.uniform(0, self.retry_jitter_s)

    async def _acquire_token(self, identity: CallerIdentity, *, force_refresh: bool = False) -> str:
        """Cached bearer token for the user, issuing a new one when needed."""
        if force_refresh:
            await self.token_cache.invalidate(identity.user_id)
        else:
            cached = await self.token_cache.get(identity.user_id)
            if cached:
                return cached

        client = await self._get_client()
        try:
            resp = await client.post(
                self.token_path,
                json={"telegramId": identity.user_key},
                headers={"accept": "application/json", "content-type": "application/json"},
            )
        except httpx.TimeoutException as exc:
            raise AuthError("Token request timed out", status=TRANSPORT_FAILURE_STATUS, path=self.token_path) from exc
        except httpx.RequestError as exc:
            raise AuthError(
                f"Token request failed: {exc}",
                status=TRANSPORT_FAILURE_STATUS,
                path=self.token_path,
            ) from exc

        payload = _parse_json(resp)
        if not resp.is_success:
            raise AuthError(
                _error_message(payload, resp),
                status=resp.status_code,
                code=_error_code(payload),
                path=self.token_path,
            )

        try:
            token = TokenResponse.model_validate(payload).bearer
        except ValidationError:
            token = None
        if not token:
            raise AuthError("Token endpoint did not return a token", status=resp.status_code, path=self.token_path)

        await self.token_cache.set(identity.user_id, token)
        logger.debug("koi_token_issued", forced=force_refresh)
        return token

    def _headers(self, token: str, identity: CallerIdentity, trace_id: str) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "authorization": f"Bearer {token}",
            "x-user-id": identity.user_key,
            "x-trace-id": trace_id,
        }
        if identity.command:
            headers["x-command"] = identity.command
        if self.bot_id:
            headers["x-bot-id"] = self.bot_id
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]],
        json: Optional[Dict[str, Any]],
    ) -> Any:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise BackendError("Backend request timed out", status=TRANSPORT_FAILURE_STATUS, path=path) from exc
        except httpx.RequestError as exc:
            raise BackendError(
                f"Backend request failed: {exc}",
                status=TRANSPORT_FAILURE_STATUS,
                path=path,
            ) from exc

        payload = _parse_json(resp)
        if not resp.is_success:
            raise BackendError(
                _error_message(payload, resp),
                status=resp.status_code,
                code=_error_code(payload),
                path=path,
            )
        if payload is None:
            raise BackendError(f"Non-JSON response: {resp.text[:200]}", status=resp.status_code, path=path)

        # 2xx carrying {"ok": false} is a logical failure
        if isinstance(payload, dict) and payload.get("ok") is False:
            raise BackendError(
                _payload_error(payload) or "Backend reported a failure",
                status=resp.status_code,
                code=_error_code(payload),
                path=path,
            )
        return payload

    async def request(
        self,
        method: str,
        path: str,
        identity: CallerIdentity,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        response_model: Optional[Type[ModelT]] = None,
    ) -> Any:
        """
        Perform one authenticated JSON call.

        Args:
            method: HTTP method
            path: Backend path, e.g. ``/api/quote``
            identity: End user the call is made for
            params: Query parameters
            json: JSON body
            headers: Extra headers, sent on every attempt
            response_model: Model the 2xx body is validated into

        Returns:
            The validated model, or the decoded JSON when no model is given

        Raises:
            AuthError: The backend refused to issue a token
            BackendError: The call failed, after one retry for transient failures
        """
        method = method.upper()
        trace_id = identity.trace_id or uuid.uuid4().hex[:16]

        with structlog.contextvars.bound_contextvars(
            trace_id=trace_id,
            user_id=identity.user_key,
            command=identity.command,
        ):
            attempt = 0
            while True:
                attempt += 1
                token = await self._acquire_token(identity, force_refresh=attempt > 1)
                request_headers = {**self._headers(token, identity, trace_id), **(headers or {})}
                try:
                    payload = await self._send(method, path, request_headers, params, json)
                except BackendError as exc:
                    if exc.status == 401:
                        await self.token_cache.invalidate(identity.user_id)

                    if attempt >= MAX_ATTEMPTS or not is_transient(exc):
                        logger.warning(
                            "koi_request_failed",
                            method=method,
                            path=path,
                            status=exc.status,
                            code=exc.code,
                            attempt=attempt,
                            error=exc.message,
                        )
                        raise

                    delay = self._backoff_delay()
                    logger.info(
                        "koi_request_retry",
                        method=method,
                        path=path,
                        status=exc.status,
                        delay_ms=round(delay * 1000),
                    )
                    await asyncio.sleep(delay)
                    continue

                logger.debug("koi_request_ok", method=method, path=path, attempt=attempt)
                return self._to_model(payload, response_model, path)

    @staticmethod
    def _to_model(payload: Any, response_model: Optional[Type[ModelT]], path: str) -> Any:
        if response_model is None:
            return payload
        try:
            return response_model.model_validate(payload)
        except ValidationError as exc:
            raise BackendError(f"Unexpected response shape from {path}", path=path) from exc

    # ------------------------------------------------------------------
    # Quotes & swaps
    # ------------------------------------------------------------------

    async def quote(self, mint: str, amount_sol: Amount, identity: CallerIdentity) -> QuoteResponse:
        return await self.request(
            "GET",
            "/api/quote",
            identity.with_command("quote"),
            params={"mint": mint, "amountSOL": str(amount_sol)},
            response_model=QuoteResponse,
        )

    async def swap(self, mint: str, amount_sol: Amount, identity: CallerIdentity) -> SwapResponse:
        # Same key on the retry so the backend can drop a duplicate submission
        idempotency_key = f"tg-{uuid.uuid4().hex}"
        return await self.request(
            "POST",
            "/api/swap",
            identity.with_command("swap"),
            json={"mint": mint, "amountSOL": float(amount_sol)},
            headers={"idempotency-key": idempotency_key},
            response_model=SwapResponse,
        )

    async def cadence_swap(self, payload: Dict[str, Any], identity: CallerIdentity) -> CadenceSwapResponse:
        """Swap through the cadence-trader algo route (sellToken, buyToken, blockchain, amount, ...)."""
        return await self.request(
            "POST",
            "/api/algo/cadence-trader",
            identity.with_command("swap"),
            json=payload,
            response_model=CadenceSwapResponse,
        )

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def wallet_create(self, identity: CallerIdentity) -> WalletCreateResponse:
        return await self.request(
            "POST",
            "/api/wallet/create",
            identity.with_command("wallet"),
            response_model=WalletCreateResponse,
        )

    async def wallet_deposit_address(self, chain: str, identity: CallerIdentity) -> WalletAddressResponse:
        return await self.request(
            "GET",
            "/api/wallet/deposit",
            identity.with_command("wallet"),
            params={"chain": chain},
            response_model=WalletAddressResponse,
        )

    async def wallet_balance(self, identity: CallerIdentity) -> WalletBalanceResponse:
        return await self.request(
            "GET",
            "/api/wallet/balance",
            identity.with_command("wallet"),
            response_model=WalletBalanceResponse,
        )

    # ------------------------------------------------------------------
    # Algos & allocations
    # ------------------------------------------------------------------

    async def algos_list(self, identity: CallerIdentity) -> AlgosListResponse:
        return await self.request(
            "GET",
            "/api/algos",
            identity.with_command("algos"),
            response_model=AlgosListResponse,
        )

    async def allocations_get(self, identity: CallerIdentity) -> AllocationsGetResponse:
        return await self.request(
            "GET",
            "/api/allocations",
            identity.with_command("allocations"),
            params={"telegramId": identity.user_key},
            response_model=AllocationsGetResponse,
        )

    async def allocations_enable(
        self, algo_id: str, amount_sol: Amount, identity: CallerIdentity
    ) -> AllocationToggleResponse:
        return await self.request(
            "POST",
            "/api/allocations/enable",
            identity.with_command("allocations"),
            json={"algoId": algo_id, "amountSol": float(amount_sol)},
            response_model=AllocationToggleResponse,
        )

    async def allocations_disable(
        self, algo_id: str, amount_sol: Amount, identity: CallerIdentity
    ) -> AllocationToggleResponse:
        return await self.request(
            "POST",
            "/api/allocations/disable",
            identity.with_command("allocations"),
            json={"algoId": algo_id, "amountSol": float(amount_sol)},
            response_model=AllocationToggleResponse,
        )
