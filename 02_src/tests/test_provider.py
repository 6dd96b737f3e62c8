"""Tests for payment providers."""

import json
from decimal import Decimal

import httpx
import pytest

from economy.errors import ProviderCallError
from economy.payments import (
    HttpPaymentProvider,
    MockPaymentProvider,
    create_payment_provider,
)


def _provider(handler) -> HttpPaymentProvider:
    return HttpPaymentProvider(
        api_key="test-key",
        base_url="https://provider.test",
        transport=httpx.MockTransport(handler),
    )


class TestHttpPaymentProvider:
    """Tests for the REST client."""

    async def test_create_wallet(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"wallet_id": "w1", "wallet_address": "addr1", "is_autonomous": True},
            )

        provider = _provider(handler)
        wallet = await provider.create_wallet("buyer", Decimal("0.10"))
        await provider.close()

        assert wallet.wallet_id == "w1"
        assert wallet.wallet_address == "addr1"
        assert wallet.is_autonomous
        assert seen["auth"] == "Bearer test-key"
        assert seen["path"] == "/v1/wallets"
        assert seen["body"] == {"owner_ref": "buyer", "limit": "0.10"}

    async def test_make_payment(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/wallets/w1/payments"
            body = json.loads(request.content)
            assert body["amount"] == "0.05"
            assert body["recipient"] == "addr2"
            return httpx.Response(200, json={"payment_id": "p1", "signature": "sig"})

        provider = _provider(handler)
        receipt = await provider.make_payment("w1", Decimal("0.05"), "addr2", "5 tokens")
        await provider.close()

        assert receipt.payment_id == "p1"
        assert receipt.signature == "sig"

    async def test_get_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            return httpx.Response(200, json={"is_active": True, "remaining_balance": "0.05"})

        provider = _provider(handler)
        status = await provider.get_status("w1")
        await provider.close()

        assert status.is_active
        assert status.remaining_balance == Decimal("0.05")

    async def test_http_error_wrapped(self):
        provider = _provider(lambda request: httpx.Response(402, text="limit exceeded"))

        with pytest.raises(ProviderCallError) as exc_info:
            await provider.make_payment("w1", Decimal("1"), "addr2", "x")
        await provider.close()

        assert "HTTP 402" in exc_info.value.message
        assert exc_info.value.details["operation"] == "make_payment"

    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = _provider(handler)
        with pytest.raises(ProviderCallError):
            await provider.get_status("w1")
        await provider.close()

    async def test_missing_field_wrapped(self):
        provider = _provider(lambda request: httpx.Response(200, json={"payment_id": "p1"}))
        with pytest.raises(ProviderCallError, match="missing field"):
            await provider.make_payment("w1", Decimal("1"), "addr2", "x")
        await provider.close()

    async def test_invalid_json_wrapped(self):
        provider = _provider(lambda request: httpx.Response(200, text="not json"))
        with pytest.raises(ProviderCallError, match="invalid response body"):
            await provider.get_status("w1")
        await provider.close()

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("PAYMENT_PROVIDER_API_KEY", raising=False)
        with pytest.raises(ValueError):
            HttpPaymentProvider()


class TestMockPaymentProvider:
    """Tests for the in-process provider."""

    async def test_wallet_funded_to_limit(self, provider):
        wallet = await provider.create_wallet("buyer", Decimal("0.10"))
        assert wallet.wallet_id.startswith("mock_buyer_")
        assert wallet.wallet_address == "mock_wallet_buyer"

        status = await provider.get_status(wallet.wallet_id)
        assert status.is_active
        assert status.remaining_balance == Decimal("0.10")

    async def test_payment_moves_funds(self, provider):
        buyer = await provider.create_wallet("buyer", Decimal("0.10"))
        seller = await provider.create_wallet("seller", Decimal("0.05"))

        receipt = await provider.make_payment(buyer.wallet_id, Decimal("0.05"), seller.wallet_address, "x")
        assert len(receipt.signature) == 64
        assert provider.receipts == [receipt]
        assert (await provider.get_status(buyer.wallet_id)).remaining_balance == Decimal("0.05")
        assert (await provider.get_status(seller.wallet_id)).remaining_balance == Decimal("0.10")

    async def test_overdraft(self, provider):
        buyer = await provider.create_wallet("buyer", Decimal("0.10"))
        with pytest.raises(ProviderCallError, match="insufficient balance"):
            await provider.make_payment(buyer.wallet_id, Decimal("0.11"), "anywhere", "x")

    async def test_unknown_wallet(self, provider):
        with pytest.raises(ProviderCallError):
            await provider.get_status("nope")

    async def test_forced_failures(self):
        provider = MockPaymentProvider(fail_wallets=True, fail_payments=True)
        with pytest.raises(ProviderCallError):
            await provider.create_wallet("buyer", Decimal("0.10"))
        with pytest.raises(ProviderCallError):
            await provider.make_payment("w1", Decimal("0.01"), "addr", "x")


class TestCreatePaymentProvider:
    """Tests for provider selection."""

    def test_default_is_mock(self, monkeypatch):
        monkeypatch.delenv("PAYMENT_PROVIDER", raising=False)
        assert isinstance(create_payment_provider(), MockPaymentProvider)

    async def test_http(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_PROVIDER_API_KEY", "k")
        provider = create_payment_provider("http")
        assert isinstance(provider, HttpPaymentProvider)
        await provider.close()

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_payment_provider("carrier-pigeon")
