"""
Tests for the Koi backend gateway.

Covers:
- Token issuance, reuse and forced re-issue
- Attribution headers
- The single retry on transient failures
- Logical failures (ok: false) and non-transient errors
- Typed operations (paths, params, bodies)
"""

import json
from typing import List

import httpx
import pytest

from monkfish.auth import UserTokenCache
from monkfish.clients import CallerIdentity, KoiGateway
from monkfish.errors import AuthError, BackendError, ConfigError, is_transient


BASE_URL = "https://koi.test"
MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


# =============================================================================
# Fixtures
# =============================================================================

class FakeKoi:
    """Scripted backend: issues numbered tokens and replays API responses in order."""

    def __init__(self, *responses, token_status: int = 200) -> None:
        self.responses = list(responses)
        self.token_status = token_status
        self.issued = 0
        self.token_requests: List[httpx.Request] = []
        self.calls: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/token":
            self.token_requests.append(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "user not linked"})
            self.issued += 1
            return httpx.Response(200, json={"token": f"tok-{self.issued}"})

        self.calls.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected call: {request.method} {request.url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def bearer_tokens(self) -> List[str]:
        return [r.headers["authorization"] for r in self.calls]


def make_gateway(backend: FakeKoi, **kwargs) -> KoiGateway:
    kwargs.setdefault("retry_base_delay_s", 0)
    kwargs.setdefault("retry_jitter_s", 0)
    kwargs.setdefault("bot_id", "monkfish-test")
    return KoiGateway(BASE_URL, transport=httpx.MockTransport(backend), **kwargs)


@pytest.fixture
def me():
    return CallerIdentity(user_id=42)


def ok(payload=None, status=200):
    return httpx.Response(status, json={"ok": True, **(payload or {})})


QUOTE = {"estOut": 123.5, "impactPct": 0.4, "hops": 2, "risk": {"honeypot": False}}


# =============================================================================
# Construction
# =============================================================================

def test_missing_base_url_is_config_error(monkeypatch):
    from monkfish.clients import koi

    monkeypatch.setattr(koi.settings, "koi_api_url", "")
    with pytest.raises(ConfigError):
        KoiGateway()


def test_is_transient_classification():
    assert is_transient(BackendError("x", status=0)) is True
    assert is_transient(BackendError("x", status=503)) is True
    assert is_transient(BackendError("x", status=429)) is True
    assert is_transient(BackendError("x", status=400)) is False
    assert is_transient(AuthError("x", status=503)) is False
    assert is_transient(ValueError("x")) is False


# =============================================================================
# Tokens & headers
# =============================================================================

class TestTokensAndHeaders:

    @pytest.mark.asyncio
    async def test_headers_on_every_call(self, me):
        backend = FakeKoi(ok(QUOTE))
        async with make_gateway(backend) as koi:
            await koi.quote(MINT, 0.5, CallerIdentity(user_id=42, trace_id="trace-abc"))

        headers = backend.calls[0].headers
        assert headers["authorization"] == "Bearer tok-1"
        assert headers["x-user-id"] == "42"
        assert headers["x-command"] == "quote"
        assert headers["x-trace-id"] == "trace-abc"
        assert headers["x-bot-id"] == "monkfish-test"
        assert headers["accept"] == "application/json"
        assert headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_trace_id_generated_when_missing(self, me):
        backend = FakeKoi(ok(QUOTE), ok(QUOTE))
        async with make_gateway(backend) as koi:
            await koi.quote(MINT, 1, me)
            await koi.quote(MINT, 1, me)

        first, second = (r.headers["x-trace-id"] for r in backend.calls)
        assert first and second
        assert first != second

    @pytest.mark.asyncio
    async def test_bot_id_omitted_when_blank(self, me):
        backend = FakeKoi(ok(QUOTE))
        async with make_gateway(backend, bot_id="") as koi:
            await koi.quote(MINT, 1, me)

        assert "x-bot-id" not in backend.calls[0].headers

    @pytest.mark.asyncio
    async def test_token_issued_once_and_reused(self, me):
        backend = FakeKoi(ok(QUOTE), ok(QUOTE))
        async with make_gateway(backend) as koi:
            await koi.quote(MINT, 1, me)
            await koi.quote(MINT, 2, me)

        assert len(backend.token_requests) == 1
        assert json.loads(backend.token_requests[0].content) == {"telegramId": "42"}
        assert backend.bearer_tokens == ["Bearer tok-1", "Bearer tok-1"]

    @pytest.mark.asyncio
    async def test_expired_token_is_reissued(self, me):
        now = [0.0]
        cache = UserTokenCache(default_ttl=60, clock=lambda: now[0])
        backend = FakeKoi(ok(QUOTE), ok(QUOTE))
        async with make_gateway(backend, token_cache=cache) as koi:
            await koi.quote(MINT, 1, me)
            now[0] = 61
            await koi.quote(MINT, 1, me)

        assert backend.bearer_tokens == ["Bearer tok-1", "Bearer tok-2"]

    @pytest.mark.asyncio
    async def test_access_token_alias(self, me):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/auth/token":
                return httpx.Response(200, json={"accessToken": "jwt-xyz"})
            return ok(QUOTE)

        koi = KoiGateway(BASE_URL, transport=httpx.MockTransport(handler))
        await koi.quote(MINT, 1, me)
        await koi.aclose()

        assert await koi.token_cache.get(42) == "jwt-xyz"

    @pytest.mark.asyncio
    async def test_token_refusal_is_auth_error(self, me):
        backend = FakeKoi(token_status=403)
        async with make_gateway(backend) as koi:
            with pytest.raises(AuthError) as exc_info:
                await koi.quote(MINT, 1, me)

        assert exc_info.value.status == 403
        assert exc_info.value.message == "user not linked"
        assert len(backend.token_requests) == 1
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_token_without_token_field_is_auth_error(self, me):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": True})

        async with KoiGateway(BASE_URL, transport=httpx.MockTransport(handler)) as koi:
            with pytest.raises(AuthError):
                await koi.wallet_balance(me)


# =============================================================================
# Retry
# =============================================================================

class TestRetry:

    @pytest.mark.asyncio
    async def test_transient_then_success(self, me):
        backend = FakeKoi(httpx.Response(500, json={"error": "hiccup"}), ok(QUOTE))
        async with make_gateway(backend) as koi:
            quote = await koi.quote(MINT, 1, me)

        assert quote.est_out == 123.5
        assert len(backend.calls) == 2
        # Every retry runs with a freshly issued token
        assert backend.bearer_tokens == ["Bearer tok-1", "Bearer tok-2"]

    @pytest.mark.asyncio
    async def test_two_transient_failures_give_up(self, me):
        backend = FakeKoi(
            httpx.Response(502, text="bad gateway"),
            httpx.Response(503, json={"error": "maintenance", "code": "MAINT"}),
        )
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError) as exc_info:
                await koi.quote(MINT, 1, me)

        assert len(backend.calls) == 2
        assert exc_info.value.status == 503
        assert exc_info.value.code == "MAINT"
        assert str(exc_info.value) == "maintenance (HTTP 503)"

    @pytest.mark.asyncio
    async def test_unauthorized_invalidates_token_and_retries(self, me):
        backend = FakeKoi(httpx.Response(401, json={"error": "expired"}), ok(QUOTE))
        async with make_gateway(backend) as koi:
            await koi.quote(MINT, 1, me)
            assert await koi.token_cache.get(42) == "tok-2"

        assert backend.bearer_tokens == ["Bearer tok-1", "Bearer tok-2"]

    @pytest.mark.asyncio
    async def test_unauthorized_twice_leaves_no_cached_token(self, me):
        backend = FakeKoi(httpx.Response(401), httpx.Response(401))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError) as exc_info:
                await koi.quote(MINT, 1, me)
            assert await koi.token_cache.get(42) is None

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, me):
        backend = FakeKoi(
            httpx.ConnectError("connection reset"),
            ok({"balances": [{"symbol": "SOL", "chain": "sol", "amount": "1.5"}]}),
        )
        async with make_gateway(backend) as koi:
            balance = await koi.wallet_balance(me)

        assert balance.balances[0].amount == "1.5"
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_twice_reports_status_zero(self, me):
        backend = FakeKoi(httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError) as exc_info:
                await koi.wallet_balance(me)

        assert exc_info.value.status == 0
        assert str(exc_info.value) == "Backend request timed out"

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, me):
        backend = FakeKoi(httpx.Response(400, json={"error": "bad mint"}))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError) as exc_info:
                await koi.quote("nope", 1, me)

        assert exc_info.value.message == "bad mint"
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_ok_false_is_not_retried(self, me):
        backend = FakeKoi(httpx.Response(200, json={"ok": False, "error": "insufficient balance"}))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError) as exc_info:
                await koi.swap(MINT, 5, me)

        assert exc_info.value.message == "insufficient balance"
        assert exc_info.value.status == 200
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_ok_false_without_message(self, me):
        backend = FakeKoi(httpx.Response(200, json={"ok": False}))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError, match="Backend reported a failure"):
                await koi.algos_list(me)

    @pytest.mark.asyncio
    async def test_non_json_success_is_backend_error(self, me):
        backend = FakeKoi(httpx.Response(200, text="<html></html>"))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError, match="Non-JSON"):
                await koi.wallet_balance(me)

    @pytest.mark.asyncio
    async def test_swap_keeps_idempotency_key_across_retry(self, me):
        backend = FakeKoi(httpx.Response(504), ok({"txId": "sig123"}))
        async with make_gateway(backend) as koi:
            result = await koi.swap(MINT, 0.25, me)

        keys = [r.headers["idempotency-key"] for r in backend.calls]
        assert result.tx_id == "sig123"
        assert keys[0] == keys[1]
        assert keys[0].startswith("tg-")


# =============================================================================
# Operations
# =============================================================================

class TestOperations:

    @pytest.mark.asyncio
    async def test_quote_params(self, me):
        backend = FakeKoi(ok(QUOTE))
        async with make_gateway(backend) as koi:
            quote = await koi.quote(MINT, 0.5, me)

        request = backend.calls[0]
        assert request.method == "GET"
        assert request.url.path == "/api/quote"
        assert request.url.params["mint"] == MINT
        assert request.url.params["amountSOL"] == "0.5"
        assert quote.impact_pct == 0.4
        assert quote.hops == 2
        assert quote.risk.honeypot is False

    @pytest.mark.asyncio
    async def test_swap_body(self, me):
        backend = FakeKoi(ok({"txId": "sig", "estimatedOut": 10}))
        async with make_gateway(backend) as koi:
            await koi.swap(MINT, 0.25, me)

        request = backend.calls[0]
        assert request.method == "POST"
        assert request.url.path == "/api/swap"
        assert request.headers["x-command"] == "swap"
        assert json.loads(request.content) == {"mint": MINT, "amountSOL": 0.25}

    @pytest.mark.asyncio
    async def test_cadence_swap(self, me):
        backend = FakeKoi(ok({"transactionSignature": "sig"}))
        body = {"sellToken": "SOL", "buyToken": MINT, "blockchain": "solana", "amount": 1}
        async with make_gateway(backend) as koi:
            result = await koi.cadence_swap(body, me)

        assert backend.calls[0].url.path == "/api/algo/cadence-trader"
        assert json.loads(backend.calls[0].content) == body
        assert result.transaction_signature == "sig"

    @pytest.mark.asyncio
    async def test_wallet_operations(self, me):
        backend = FakeKoi(
            ok({"walletId": "w1", "address": "addr", "chain": "sol"}),
            ok({"address": "addr", "chain": "sol"}),
            ok({"balances": []}),
        )
        async with make_gateway(backend) as koi:
            created = await koi.wallet_create(me)
            deposit = await koi.wallet_deposit_address("sol", me)
            balance = await koi.wallet_balance(me)

        assert [r.url.path for r in backend.calls] == [
            "/api/wallet/create",
            "/api/wallet/deposit",
            "/api/wallet/balance",
        ]
        assert backend.calls[1].url.params["chain"] == "sol"
        assert created.wallet_id == "w1"
        assert deposit.address == "addr"
        assert balance.balances == []
        assert {r.headers["x-command"] for r in backend.calls} == {"wallet"}

    @pytest.mark.asyncio
    async def test_algos_and_allocations(self, me):
        backend = FakeKoi(
            ok({"algos": [{"id": "cadence", "name": "Cadence Trader", "status": "live"}]}),
            ok({"allocations": [{"algoId": "cadence", "percent": 25}]}),
            ok({"allocationId": "a1", "status": "active"}),
            ok({"allocationId": "a1", "status": "paused"}),
        )
        async with make_gateway(backend) as koi:
            algos = await koi.algos_list(me)
            allocations = await koi.allocations_get(me)
            enabled = await koi.allocations_enable("cadence", 1.5, me)
            disabled = await koi.allocations_disable("cadence", 1.5, me)

        assert algos.algos[0].name == "Cadence Trader"
        assert allocations.allocations[0].algo_id == "cadence"
        assert backend.calls[1].url.params["telegramId"] == "42"
        assert json.loads(backend.calls[2].content) == {"algoId": "cadence", "amountSol": 1.5}
        assert backend.calls[3].url.path == "/api/allocations/disable"
        assert enabled.status == "active"
        assert disabled.status == "paused"

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_backend_error(self, me):
        backend = FakeKoi(ok({"impactPct": 1.0}))
        async with make_gateway(backend) as koi:
            with pytest.raises(BackendError, match="Unexpected response shape"):
                await koi.quote(MINT, 1, me)

    @pytest.mark.asyncio
    async def test_raw_request_returns_payload(self, me):
        backend = FakeKoi(ok({"anything": [1, 2]}))
        async with make_gateway(backend) as koi:
            payload = await koi.request("get", "/api/custom", me.with_command("custom"))

        assert payload == {"ok": True, "anything": [1, 2]}
        assert backend.calls[0].headers["x-command"] == "custom"
