"""Agent economy: buyer and seller agents with a payment state machine."""

from .agents import BaseAgent, BuyerAgent, IAgent, SellerAgent
from .app import Application, IApplication
from .dedup import IDedupStore, InMemoryDedupStore, MessageDeduplicator, SqliteDedupStore
from .errors import (
    EconomyError,
    InvalidTransitionError,
    NoProviderError,
    NotFoundError,
    NotInitializedError,
    ProviderCallError,
    RefundWindowClosedError,
)
from .mailbox import IMailbox, Mailbox
from .models import (
    AgentProfile,
    LogType,
    Message,
    MessageType,
    PaymentEvent,
    PaymentState,
    PaymentStatus,
    TransactionLogEntry,
    WalletHandle,
)
from .payments import HttpPaymentProvider, IPaymentProvider, MockPaymentProvider
from .router import IMessageRouter, MessageRouter
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "AgentProfile",
    "WalletHandle",
    "Message",
    "MessageType",
    "PaymentEvent",
    "PaymentState",
    "PaymentStatus",
    "LogType",
    "TransactionLogEntry",
    # Errors
    "EconomyError",
    "InvalidTransitionError",
    "NoProviderError",
    "NotFoundError",
    "NotInitializedError",
    "ProviderCallError",
    "RefundWindowClosedError",
    # Components
    "IStorage",
    "Storage",
    "ITracker",
    "Tracker",
    "IDedupStore",
    "InMemoryDedupStore",
    "SqliteDedupStore",
    "MessageDeduplicator",
    "IMailbox",
    "Mailbox",
    "IPaymentProvider",
    "HttpPaymentProvider",
    "MockPaymentProvider",
    "IMessageRouter",
    "MessageRouter",
    # Agents
    "IAgent",
    "BaseAgent",
    "BuyerAgent",
    "SellerAgent",
]
