"""Seller agent: quotes fixed prices and delivers after payment."""

import asyncio
from datetime import datetime
from decimal import Decimal

from ..config import QUOTE_DELIVERY_MINUTES, SELLER_PRICING, delivery_delay
from ..dedup import MessageDeduplicator
from ..errors import InvalidTransitionError, NotFoundError, ProviderCallError
from ..models import AgentProfile, Message, MessageType, PaymentState, PaymentStatus, WalletHandle
from ..payments import IPaymentProvider
from ..storage import IStorage
from ..tracker import Tracker
from .base import BaseAgent, MessageHandler


class SellerAgent(BaseAgent):
    """Supply side of the protocol."""

    def __init__(
        self,
        agent_id: str,
        agent_name: str,
        wallet: WalletHandle,
        storage: IStorage,
        tracker: Tracker,
        provider: IPaymentProvider,
        deduplicator: MessageDeduplicator | None = None,
        pricing: dict[str, Decimal] | None = None,
        delivery_seconds: float | None = None,
    ):
        super().__init__(
            agent_id, agent_name, wallet, storage, tracker, provider, deduplicator
        )
        self._pricing = dict(pricing if pricing is not None else SELLER_PRICING)
        self._delivery_seconds = (
            delivery_seconds if delivery_seconds is not None else delivery_delay()
        )

    def _handlers(self) -> dict[MessageType, MessageHandler]:
        return {
            MessageType.SERVICE_REQUEST: self._handle_service_request,
            MessageType.PAYMENT_NOTIFICATION: self._handle_payment,
        }

    async def initialize(self) -> None:
        """Register as a provider of every priced service."""
        await self._storage.register_agent(
            AgentProfile(
                agent_id=self._agent_id,
                agent_name=self._agent_name,
                session_wallet=self._wallet,
                services=list(self._pricing),
                fixed_pricing=self._pricing,
                is_online=True,
            )
        )
        await self._tracker.message(
            self._agent_id, f"{self._agent_name} registered as GPT-4 token provider"
        )

    def calculate_price(self, service_type: str, quantity: int) -> Decimal:
        """Fixed per-unit pricing."""
        unit_price = self._pricing.get(service_type)
        if unit_price is None:
            raise ValueError(f"Service not offered: {service_type}")
        return unit_price * quantity

    async def _handle_service_request(self, message: Message) -> None:
        request = message.payload
        service_type = request["service_type"]
        quantity = int(request["quantity"])
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")

        price = self.calculate_price(service_type, quantity)

        await self._tracker.message(
            self._agent_id, f"Sending quote: ${price} for {quantity} tokens"
        )
        await self._mailbox.send(
            message.from_agent_id,
            MessageType.QUOTE,
            {
                "service_type": service_type,
                "price": str(price),
                "quantity": quantity,
                "delivery_time_minutes": QUOTE_DELIVERY_MINUTES,
            },
        )

    async def _handle_payment(self, message: Message) -> None:
        notification = message.payload
        payment_id = notification["payment_id"]
        quantity = int(notification.get("quantity", 0))

        await self._tracker.received(
            self._agent_id,
            f"Payment received: ${notification['amount']}. Funds transferred immediately.",
            notification,
        )
        refundable_until = notification.get("refundable_until")
        if refundable_until:
            deadline = datetime.fromisoformat(refundable_until)
            await self._tracker.message(
                self._agent_id,
                f"Buyer can dispute until {deadline:%Y-%m-%d %H:%M} UTC if not satisfied.",
            )

        await self._verify_balance()
        await self._deliver(notification)

        try:
            await self._storage.transition(
                payment_id,
                PaymentStatus.COMPLETED,
                self._agent_id,
                {"quantity_delivered": quantity},
                expected_status=PaymentStatus.DELIVERY_PENDING,
            )
        except InvalidTransitionError as e:
            if e.current != PaymentStatus.DISPUTED:
                raise
            # Settlement is left to resolve_dispute()
            await self._tracker.warning(
                self._agent_id,
                f"Payment {payment_id} was disputed during delivery. Awaiting resolution.",
                {"payment_id": payment_id, "status": PaymentStatus.DISPUTED.value},
            )
            return
        await self._tracker.message(self._agent_id, f"Delivered {quantity} tokens")

        await self._mailbox.send(
            message.from_agent_id,
            MessageType.DELIVERY_CONFIRMATION,
            {
                "payment_id": payment_id,
                "service_type": notification.get("service_type"),
                "quantity_delivered": quantity,
            },
        )
        await self._tracker.message(self._agent_id, "Delivery confirmed!")

    async def _verify_balance(self) -> None:
        """Best-effort wallet check; a failure is logged, never fatal."""
        try:
            status = await self._provider.get_status(self._wallet.wallet_id)
        except ProviderCallError as e:
            await self._tracker.warning(
                self._agent_id, f"Could not verify wallet balance: {e.message}"
            )
            return

        await self._tracker.message(
            self._agent_id,
            f"Wallet balance verified: ${status.remaining_balance}",
            {"is_active": status.is_active, "remaining_balance": str(status.remaining_balance)},
        )

    async def _deliver(self, notification: dict) -> None:
        """Simulated fulfillment."""
        await asyncio.sleep(self._delivery_seconds)

    async def resolve_dispute(self, payment_id: str, refund: bool) -> PaymentState:
        """
        Close a dispute by refunding or completing the payment.

        Only the payment state changes; moving funds back is not modelled.
        """
        payment = await self._storage.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)

        target = PaymentStatus.REFUNDED if refund else PaymentStatus.COMPLETED
        updated = await self._storage.transition(
            payment_id, target, self._agent_id, {"resolution": target.value}
        )
        await self._tracker.message(
            self._agent_id, f"Dispute on payment {payment_id} resolved: {target.value}"
        )
        return updated
