"""Payment lifecycle data models and the transition table."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable

from ..errors import InvalidTransitionError


class PaymentStatus(str, Enum):
    """States of a payment lifecycle."""

    INITIATED = "initiated"
    QUOTE_RECEIVED = "quote_received"
    PAYMENT_SENT = "payment_sent"
    DELIVERY_PENDING = "delivery_pending"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


# Every status must have an entry; an empty set marks a terminal status.
TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.INITIATED: frozenset({PaymentStatus.QUOTE_RECEIVED}),
    PaymentStatus.QUOTE_RECEIVED: frozenset({PaymentStatus.PAYMENT_SENT}),
    PaymentStatus.PAYMENT_SENT: frozenset(
        {PaymentStatus.DELIVERY_PENDING, PaymentStatus.DISPUTED}
    ),
    PaymentStatus.DELIVERY_PENDING: frozenset(
        {PaymentStatus.COMPLETED, PaymentStatus.DISPUTED, PaymentStatus.REFUNDED}
    ),
    PaymentStatus.DISPUTED: frozenset(
        {PaymentStatus.REFUNDED, PaymentStatus.COMPLETED}
    ),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def allowed_transitions(status: PaymentStatus) -> frozenset[PaymentStatus]:
    """Get the set of statuses reachable from a status in one step."""
    return TRANSITIONS[PaymentStatus(status)]


def is_terminal(status: PaymentStatus) -> bool:
    """Check whether a status has no outgoing transitions."""
    return not allowed_transitions(status)


def can_transition(current: PaymentStatus, requested: PaymentStatus) -> bool:
    """Check whether current -> requested is a legal step."""
    return PaymentStatus(requested) in allowed_transitions(current)


@dataclass(frozen=True)
class PaymentEvent:
    """Immutable record of one status change."""

    status: PaymentStatus
    timestamp: datetime
    actor: str  # agent id that caused the transition
    metadata: dict | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
            "metadata": self.metadata,
        }


@dataclass
class PaymentState:
    """One purchase tracked from initiation to terminal resolution."""

    payment_id: str
    status: PaymentStatus
    buyer_agent_id: str
    seller_agent_id: str
    amount: Decimal
    service_type: str
    refundable_until: datetime
    created_at: datetime
    updated_at: datetime
    transaction_signature: str | None = None
    delivery_confirmed_at: datetime | None = None
    events: list[PaymentEvent] = field(default_factory=list)

    def __post_init__(self):
        self.amount = Decimal(str(self.amount))
        if self.amount <= 0:
            raise ValueError(f"Payment amount must be positive, got {self.amount}")
        self.status = PaymentStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def to_dict(self) -> dict:
        """Serialize payment for logs and API responses."""
        return {
            "payment_id": self.payment_id,
            "status": self.status.value,
            "buyer_agent_id": self.buyer_agent_id,
            "seller_agent_id": self.seller_agent_id,
            "amount": str(self.amount),
            "service_type": self.service_type,
            "transaction_signature": self.transaction_signature,
            "refundable_until": self.refundable_until.isoformat(),
            "delivery_confirmed_at": (
                self.delivery_confirmed_at.isoformat()
                if self.delivery_confirmed_at
                else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "events": [event.to_dict() for event in self.events],
        }


def replay_status(events: Iterable[PaymentEvent], payment_id: str = "") -> PaymentStatus:
    """
    Rebuild the current status from an event history.

    The first event is taken as the initial status; every later event must be
    a legal step from the one before it.

    Raises:
        ValueError: If the history is empty
        InvalidTransitionError: If the history contains an illegal step
    """
    status: PaymentStatus | None = None
    for event in events:
        if status is not None and not can_transition(status, event.status):
            raise InvalidTransitionError(
                payment_id, status, event.status, allowed_transitions(status)
            )
        status = event.status

    if status is None:
        raise ValueError(f"Payment {payment_id} has no events to replay")
    return status
