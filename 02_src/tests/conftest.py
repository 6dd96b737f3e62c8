"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from economy.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage):
    """Create Tracker with storage."""
    from economy.tracker import Tracker

    return Tracker(storage)


@pytest.fixture
def provider():
    """Create in-process payment provider."""
    from economy.payments import MockPaymentProvider

    return MockPaymentProvider()


@pytest_asyncio.fixture
async def seller(storage, tracker, provider):
    """Registered seller with a funded mock wallet and no delivery delay."""
    from economy.agents import SellerAgent

    wallet = await provider.create_wallet("seller-agent-demo", Decimal("0.05"))
    agent = SellerAgent(
        agent_id="seller-agent-demo",
        agent_name="Demo GPT-4 Provider",
        wallet=wallet,
        storage=storage,
        tracker=tracker,
        provider=provider,
        delivery_seconds=0,
    )
    await agent.initialize()
    return agent


@pytest_asyncio.fixture
async def buyer(storage, tracker, provider):
    """Registered buyer with a funded mock wallet."""
    from economy.agents import BuyerAgent

    wallet = await provider.create_wallet("buyer-agent-demo", Decimal("0.10"))
    agent = BuyerAgent(
        agent_id="buyer-agent-demo",
        agent_name="Demo Buyer Agent",
        wallet=wallet,
        storage=storage,
        tracker=tracker,
        provider=provider,
    )
    await agent.initialize()
    return agent


@pytest_asyncio.fixture
async def router(storage, seller, buyer):
    """Router with both agents registered but not polling."""
    from economy.router import MessageRouter

    rt = MessageRouter(storage, interval=0.01)
    rt.register(seller)
    rt.register(buyer)
    yield rt
    await rt.stop()


@pytest.fixture
def make_payment():
    """Factory for PaymentState objects."""
    from economy.models import PaymentState, PaymentStatus

    def _make(
        payment_id: str = "pay-1",
        status: PaymentStatus = PaymentStatus.INITIATED,
        amount: str = "0.05",
        refundable_for: timedelta = timedelta(hours=24),
    ) -> PaymentState:
        now = datetime.now(timezone.utc)
        return PaymentState(
            payment_id=payment_id,
            status=status,
            buyer_agent_id="buyer-agent-demo",
            seller_agent_id="seller-agent-demo",
            amount=Decimal(amount),
            service_type="gpt4-tokens",
            refundable_until=now + refundable_for,
            created_at=now,
            updated_at=now,
        )

    return _make


@pytest.fixture
def make_message():
    """Factory for Message objects with a fixed or random id."""
    import uuid

    from economy.models import Message, MessageType

    def _make(
        message_type: MessageType,
        payload: dict,
        from_agent_id: str = "buyer-agent-demo",
        to_agent_id: str = "seller-agent-demo",
        message_id: str | None = None,
    ) -> Message:
        return Message(
            message_id=message_id or str(uuid.uuid4()),
            type=message_type,
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            payload=payload,
            timestamp=datetime.now(timezone.utc),
        )

    return _make
