"""Buyer agent: discovers a provider, requests quotes and pays autonomously."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from ..config import SERVICE_TYPE, refund_window
from ..dedup import MessageDeduplicator
from ..errors import NoProviderError, NotFoundError, ProviderCallError, RefundWindowClosedError
from ..models import (
    AgentProfile,
    Message,
    MessageType,
    PaymentEvent,
    PaymentState,
    PaymentStatus,
    WalletHandle,
)
from ..payments import IPaymentProvider
from ..storage import IStorage
from ..tracker import Tracker
from .base import BaseAgent, MessageHandler


class BuyerAgent(BaseAgent):
    """Demand side of the protocol."""

    def __init__(
        self,
        agent_id: str,
        agent_name: str,
        wallet: WalletHandle,
        storage: IStorage,
        tracker: Tracker,
        provider: IPaymentProvider,
        deduplicator: MessageDeduplicator | None = None,
        refund_period: timedelta | None = None,
    ):
        super().__init__(
            agent_id, agent_name, wallet, storage, tracker, provider, deduplicator
        )
        self._refund_period = refund_period if refund_period is not None else refund_window()

    def _handlers(self) -> dict[MessageType, MessageHandler]:
        return {
            MessageType.QUOTE: self._handle_quote,
            MessageType.DELIVERY_CONFIRMATION: self._handle_delivery,
        }

    async def initialize(self) -> None:
        """Register in the agent registry (buyers offer no services)."""
        await self._storage.register_agent(
            AgentProfile(
                agent_id=self._agent_id,
                agent_name=self._agent_name,
                session_wallet=self._wallet,
                services=[],
                fixed_pricing={},
                is_online=True,
            )
        )
        await self._tracker.message(self._agent_id, f"{self._agent_name} initialized and online")

    async def purchase_tokens(self, quantity: int, service_type: str = SERVICE_TYPE) -> Message:
        """
        Ask the first registered provider of a service for a quote.

        Raises:
            ValueError: If quantity is not positive
            NoProviderError: If no registered agent offers the service
        """
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")

        await self._tracker.message(self._agent_id, f"Looking for {service_type} provider...")

        agents = await self._storage.list_agents()
        provider = next((a for a in agents if a.offers(service_type)), None)
        if provider is None:
            await self._tracker.warning(
                self._agent_id, f"No provider found for {service_type}"
            )
            raise NoProviderError(service_type)

        await self._tracker.message(self._agent_id, f"Found provider: {provider.agent_name}")

        request = await self._mailbox.send(
            provider.agent_id,
            MessageType.SERVICE_REQUEST,
            {"service_type": service_type, "quantity": quantity},
        )
        await self._tracker.sent(
            self._agent_id,
            "Service request sent. Waiting for quote...",
            {"message_id": request.message_id, "quantity": quantity},
        )
        return request

    async def _handle_quote(self, message: Message) -> None:
        """Accept the quoted price, pay through the provider, notify the seller."""
        quote = message.payload
        price = Decimal(str(quote["price"]))
        quantity = int(quote["quantity"])
        service_type = quote.get("service_type", SERVICE_TYPE)

        await self._tracker.message(
            self._agent_id,
            f"Quote received: ${price} for {quantity} tokens",
            quote,
        )

        seller = await self._storage.get_agent(message.from_agent_id)
        if seller is None:
            raise NotFoundError("agent", message.from_agent_id)

        try:
            receipt = await self._provider.make_payment(
                self._wallet.wallet_id,
                price,
                seller.session_wallet.wallet_address,
                f"Purchase of {quantity} {service_type}",
            )
        except ProviderCallError as e:
            # No payment record and no retry: the quote is dropped.
            await self._tracker.warning(
                self._agent_id,
                f"Payment failed: {e.message}. Quote dropped.",
                {"seller_agent_id": seller.agent_id, "amount": str(price)},
            )
            raise

        now = datetime.now(timezone.utc)
        refundable_until = now + self._refund_period
        signature_prefix = receipt.signature[:16]

        await self._storage.store_payment(
            PaymentState(
                payment_id=receipt.payment_id,
                status=PaymentStatus.PAYMENT_SENT,
                buyer_agent_id=self._agent_id,
                seller_agent_id=seller.agent_id,
                amount=price,
                service_type=service_type,
                transaction_signature=receipt.signature,
                refundable_until=refundable_until,
                created_at=now,
                updated_at=now,
                events=[
                    PaymentEvent(
                        status=PaymentStatus.PAYMENT_SENT,
                        timestamp=now,
                        actor=self._agent_id,
                        metadata={
                            "quote_price": str(price),
                            "quantity": quantity,
                            "transaction_signature": signature_prefix,
                        },
                    )
                ],
            )
        )
        await self._storage.transition(
            receipt.payment_id,
            PaymentStatus.DELIVERY_PENDING,
            self._agent_id,
            {"refundable_until": refundable_until.isoformat()},
        )

        await self._tracker.sent(
            self._agent_id,
            f"Payment sent: ${price}. Refundable until {refundable_until:%Y-%m-%d %H:%M} UTC",
            {"payment_id": receipt.payment_id, "amount": str(price)},
        )

        await self._mailbox.send(
            seller.agent_id,
            MessageType.PAYMENT_NOTIFICATION,
            {
                "payment_id": receipt.payment_id,
                "amount": str(price),
                "service_type": service_type,
                "quantity": quantity,
                "transaction_signature": receipt.signature,
                "refundable_until": refundable_until.isoformat(),
            },
        )

    async def _handle_delivery(self, message: Message) -> None:
        """Acknowledge a delivery; flag it if the store disagrees."""
        confirmation = message.payload
        await self._tracker.message(
            self._agent_id,
            "Tokens delivered! Transaction complete.",
            confirmation,
        )

        payment_id = confirmation.get("payment_id")
        payment = await self._storage.get_payment(payment_id) if payment_id else None
        if payment is None or payment.status != PaymentStatus.COMPLETED:
            status = payment.status.value if payment else "missing"
            await self._tracker.warning(
                self._agent_id,
                f"Delivery confirmed for payment {payment_id} but stored status is {status}",
                {"payment_id": payment_id, "status": status},
            )

    async def dispute_payment(self, payment_id: str, reason: str) -> PaymentState:
        """
        Open a dispute on a payment that is still inside its refund window.

        Raises:
            NotFoundError: If the payment is unknown
            RefundWindowClosedError: If the payment is not refundable
        """
        payment = await self._storage.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)

        if not await self._storage.can_refund(payment_id):
            raise RefundWindowClosedError(payment_id, payment.status)

        updated = await self._storage.transition(
            payment_id, PaymentStatus.DISPUTED, self._agent_id, {"reason": reason}
        )
        await self._tracker.sent(
            self._agent_id,
            f"Dispute opened for payment {payment_id}: {reason}",
            {"payment_id": payment_id, "reason": reason},
        )
        return updated
