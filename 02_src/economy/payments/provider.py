"""Payment provider implementations (remote HTTP API and in-process mock)."""

import os
import secrets
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import httpx

from ..errors import ProviderCallError
from ..logging_config import get_logger
from ..models import WalletHandle

logger = get_logger(__name__)

DEFAULT_PROVIDER_URL = "http://localhost:8080"


@dataclass(frozen=True)
class PaymentReceipt:
    """Provider acknowledgement of a sent payment."""

    payment_id: str
    signature: str  # on-chain transaction signature


@dataclass(frozen=True)
class WalletStatus:
    """Spending state of a session wallet."""

    is_active: bool
    remaining_balance: Decimal


class IPaymentProvider(Protocol):
    """Abstraction over the wallet/payment service."""

    async def create_wallet(self, owner_ref: str, limit: Decimal) -> WalletHandle:
        """Create a session wallet with a spending limit."""
        ...

    async def make_payment(
        self,
        wallet_id: str,
        amount: Decimal,
        recipient_address: str,
        description: str,
    ) -> PaymentReceipt:
        """Transfer funds from a session wallet."""
        ...

    async def get_status(self, wallet_id: str) -> WalletStatus:
        """Get a session wallet's status."""
        ...


class HttpPaymentProvider:
    """Payment provider reached over its REST API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key or os.getenv("PAYMENT_PROVIDER_API_KEY")
        if not self._api_key:
            raise ValueError("PAYMENT_PROVIDER_API_KEY environment variable not set")

        self._base_url = base_url or os.getenv("PAYMENT_PROVIDER_URL", DEFAULT_PROVIDER_URL)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderCallError(
                operation,
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderCallError(operation, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise ProviderCallError(operation, f"invalid response body: {e}") from e

    async def create_wallet(self, owner_ref: str, limit: Decimal) -> WalletHandle:
        """Create a session wallet with a spending limit."""
        data = await self._request(
            "create_wallet",
            "POST",
            "/v1/wallets",
            json={"owner_ref": owner_ref, "limit": str(limit)},
        )
        try:
            return WalletHandle(
                wallet_id=data["wallet_id"],
                wallet_address=data["wallet_address"],
                is_autonomous=bool(data.get("is_autonomous", False)),
            )
        except KeyError as e:
            raise ProviderCallError("create_wallet", f"missing field {e}") from e

    async def make_payment(
        self,
        wallet_id: str,
        amount: Decimal,
        recipient_address: str,
        description: str,
    ) -> PaymentReceipt:
        """Transfer funds from a session wallet."""
        data = await self._request(
            "make_payment",
            "POST",
            f"/v1/wallets/{wallet_id}/payments",
            json={
                "amount": str(amount),
                "recipient": recipient_address,
                "description": description,
            },
        )
        try:
            return PaymentReceipt(payment_id=data["payment_id"], signature=data["signature"])
        except KeyError as e:
            raise ProviderCallError("make_payment", f"missing field {e}") from e

    async def get_status(self, wallet_id: str) -> WalletStatus:
        """Get a session wallet's status."""
        data = await self._request("get_status", "GET", f"/v1/wallets/{wallet_id}")
        try:
            return WalletStatus(
                is_active=bool(data["is_active"]),
                remaining_balance=Decimal(str(data["remaining_balance"])),
            )
        except KeyError as e:
            raise ProviderCallError("get_status", f"missing field {e}") from e


@dataclass
class _MockWallet:
    handle: WalletHandle
    balance: Decimal
    is_active: bool = True


class MockPaymentProvider:
    """In-process provider with funded mock wallets for demos and tests."""

    def __init__(self, fail_wallets: bool = False, fail_payments: bool = False):
        self.fail_wallets = fail_wallets
        self.fail_payments = fail_payments
        self.receipts: list[PaymentReceipt] = []
        self._wallets: dict[str, _MockWallet] = {}

    async def create_wallet(self, owner_ref: str, limit: Decimal) -> WalletHandle:
        if self.fail_wallets:
            raise ProviderCallError("create_wallet", "mock wallet creation disabled")

        handle = WalletHandle(
            wallet_id=f"mock_{owner_ref}_{uuid.uuid4().hex[:8]}",
            wallet_address=f"mock_wallet_{owner_ref}",
            is_autonomous=True,
        )
        self._wallets[handle.wallet_id] = _MockWallet(handle=handle, balance=Decimal(str(limit)))
        logger.info("Mock wallet %s created with limit %s", handle.wallet_id, limit)
        return handle

    def _wallet(self, operation: str, wallet_id: str) -> _MockWallet:
        wallet = self._wallets.get(wallet_id)
        if wallet is None:
            raise ProviderCallError(operation, f"unknown wallet {wallet_id}")
        return wallet

    async def make_payment(
        self,
        wallet_id: str,
        amount: Decimal,
        recipient_address: str,
        description: str,
    ) -> PaymentReceipt:
        if self.fail_payments:
            raise ProviderCallError("make_payment", "mock payments disabled")

        amount = Decimal(str(amount))
        wallet = self._wallet("make_payment", wallet_id)
        if not wallet.is_active:
            raise ProviderCallError("make_payment", f"wallet {wallet_id} is inactive")
        if amount <= 0:
            raise ProviderCallError("make_payment", f"invalid amount {amount}")
        if wallet.balance < amount:
            raise ProviderCallError(
                "make_payment",
                f"insufficient balance: {wallet.balance} < {amount}",
            )

        wallet.balance -= amount
        for other in self._wallets.values():
            if other.handle.wallet_address == recipient_address:
                other.balance += amount
                break

        receipt = PaymentReceipt(payment_id=str(uuid.uuid4()), signature=secrets.token_hex(32))
        self.receipts.append(receipt)
        logger.info("Mock payment %s: %s to %s (%s)", receipt.payment_id, amount, recipient_address, description)
        return receipt

    async def get_status(self, wallet_id: str) -> WalletStatus:
        wallet = self._wallet("get_status", wallet_id)
        return WalletStatus(is_active=wallet.is_active, remaining_balance=wallet.balance)


def create_payment_provider(kind: str | None = None) -> IPaymentProvider:
    """Build the provider selected by PAYMENT_PROVIDER (mock or http)."""
    kind = (kind or os.getenv("PAYMENT_PROVIDER", "mock")).lower()
    if kind == "mock":
        return MockPaymentProvider()
    if kind == "http":
        return HttpPaymentProvider()
    raise ValueError(f"Unknown PAYMENT_PROVIDER: {kind}")
