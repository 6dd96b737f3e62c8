"""Core data models for the agent economy."""

from .agents import AgentProfile, WalletHandle
from .messages import Message, MessageType
from .payments import (
    TRANSITIONS,
    PaymentEvent,
    PaymentState,
    PaymentStatus,
    allowed_transitions,
    can_transition,
    is_terminal,
    replay_status,
)
from .tracing import LogType, TransactionLogEntry

__all__ = [
    # Agents
    "AgentProfile",
    "WalletHandle",
    # Messages
    "Message",
    "MessageType",
    # Payments
    "PaymentStatus",
    "PaymentEvent",
    "PaymentState",
    "TRANSITIONS",
    "allowed_transitions",
    "can_transition",
    "is_terminal",
    "replay_status",
    # Tracing
    "LogType",
    "TransactionLogEntry",
]
