"""Tests for data models and the transition table."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from economy.errors import InvalidTransitionError
from economy.models import (
    TRANSITIONS,
    AgentProfile,
    LogType,
    Message,
    MessageType,
    PaymentEvent,
    PaymentState,
    PaymentStatus,
    TransactionLogEntry,
    WalletHandle,
    allowed_transitions,
    can_transition,
    is_terminal,
    replay_status,
)


def _event(status: PaymentStatus) -> PaymentEvent:
    return PaymentEvent(status=status, timestamp=datetime.now(timezone.utc), actor="test")


class TestTransitionTable:
    """Tests for the payment state machine table."""

    def test_every_status_has_entry(self):
        """Test that the table is exhaustive over PaymentStatus."""
        assert set(TRANSITIONS) == set(PaymentStatus)

    def test_targets_are_statuses(self):
        for targets in TRANSITIONS.values():
            assert targets <= set(PaymentStatus)

    def test_no_self_loops(self):
        for status, targets in TRANSITIONS.items():
            assert status not in targets

    @pytest.mark.parametrize(
        "current,requested",
        [
            (PaymentStatus.INITIATED, PaymentStatus.QUOTE_RECEIVED),
            (PaymentStatus.QUOTE_RECEIVED, PaymentStatus.PAYMENT_SENT),
            (PaymentStatus.PAYMENT_SENT, PaymentStatus.DELIVERY_PENDING),
            (PaymentStatus.PAYMENT_SENT, PaymentStatus.DISPUTED),
            (PaymentStatus.DELIVERY_PENDING, PaymentStatus.COMPLETED),
            (PaymentStatus.DELIVERY_PENDING, PaymentStatus.DISPUTED),
            (PaymentStatus.DELIVERY_PENDING, PaymentStatus.REFUNDED),
            (PaymentStatus.DISPUTED, PaymentStatus.REFUNDED),
            (PaymentStatus.DISPUTED, PaymentStatus.COMPLETED),
        ],
    )
    def test_legal_steps(self, current, requested):
        assert can_transition(current, requested)

    def test_legal_step_count(self):
        """Test that no edges exist beyond the nine legal ones."""
        assert sum(len(targets) for targets in TRANSITIONS.values()) == 9

    def test_illegal_step(self):
        assert not can_transition(PaymentStatus.INITIATED, PaymentStatus.COMPLETED)

    def test_terminal_statuses(self):
        assert is_terminal(PaymentStatus.COMPLETED)
        assert is_terminal(PaymentStatus.REFUNDED)
        assert not is_terminal(PaymentStatus.DISPUTED)
        assert allowed_transitions(PaymentStatus.REFUNDED) == frozenset()

    def test_accepts_raw_values(self):
        """Test that plain string values are coerced."""
        assert can_transition("initiated", "quote_received")


class TestReplayStatus:
    """Tests for rebuilding status from history."""

    def test_replay_full_history(self):
        events = [
            _event(PaymentStatus.INITIATED),
            _event(PaymentStatus.QUOTE_RECEIVED),
            _event(PaymentStatus.PAYMENT_SENT),
            _event(PaymentStatus.DELIVERY_PENDING),
            _event(PaymentStatus.COMPLETED),
        ]
        assert replay_status(events) == PaymentStatus.COMPLETED

    def test_replay_starts_mid_lifecycle(self):
        """Test that the first event is taken as the initial status."""
        events = [_event(PaymentStatus.PAYMENT_SENT), _event(PaymentStatus.DELIVERY_PENDING)]
        assert replay_status(events) == PaymentStatus.DELIVERY_PENDING

    def test_replay_rejects_illegal_step(self):
        events = [_event(PaymentStatus.INITIATED), _event(PaymentStatus.COMPLETED)]
        with pytest.raises(InvalidTransitionError):
            replay_status(events, "pay-1")

    def test_replay_empty(self):
        with pytest.raises(ValueError):
            replay_status([])


class TestPaymentState:
    """Tests for PaymentState model."""

    def _payment(self, amount) -> PaymentState:
        now = datetime.now(timezone.utc)
        return PaymentState(
            payment_id="pay-1",
            status=PaymentStatus.INITIATED,
            buyer_agent_id="buyer",
            seller_agent_id="seller",
            amount=amount,
            service_type="gpt4-tokens",
            refundable_until=now + timedelta(hours=24),
            created_at=now,
            updated_at=now,
        )

    def test_amount_coerced_to_decimal(self):
        payment = self._payment("0.05")
        assert payment.amount == Decimal("0.05")
        assert payment.events == []

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValueError):
            self._payment(Decimal("0"))

    def test_to_dict(self):
        data = self._payment("0.05").to_dict()
        assert data["status"] == "initiated"
        assert data["amount"] == "0.05"
        assert data["delivery_confirmed_at"] is None
        assert data["events"] == []


class TestMessage:
    """Tests for Message model."""

    def test_to_dict(self):
        ts = datetime.now(timezone.utc)
        msg = Message(
            message_id="msg1",
            type=MessageType.QUOTE,
            from_agent_id="seller",
            to_agent_id="buyer",
            payload={"price": "0.05"},
            timestamp=ts,
        )
        data = msg.to_dict()
        assert data["type"] == "quote"
        assert data["timestamp"] == ts.isoformat()
        assert data["signature"] == ""


class TestAgentProfile:
    """Tests for AgentProfile model."""

    def test_offers(self):
        profile = AgentProfile(
            agent_id="seller",
            agent_name="Seller",
            session_wallet=WalletHandle(wallet_id="w1", wallet_address="addr1"),
            services=["gpt4-tokens"],
        )
        assert profile.offers("gpt4-tokens")
        assert not profile.offers("images")
        assert profile.is_online


class TestTransactionLogEntry:
    """Tests for TransactionLogEntry model."""

    def test_to_dict(self):
        entry = TransactionLogEntry(
            id="log1",
            timestamp=datetime.now(timezone.utc),
            agent_id="buyer",
            type=LogType.SENT,
            message="hello",
        )
        assert entry.to_dict()["type"] == "sent"
        assert entry.to_dict()["data"] is None
