"""Message-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MessageType(str, Enum):
    """Kinds of messages exchanged between agents."""

    SERVICE_REQUEST = "service_request"
    QUOTE = "quote"
    PAYMENT_NOTIFICATION = "payment_notification"
    DELIVERY_CONFIRMATION = "delivery_confirmation"


@dataclass
class Message:
    """A single asynchronous message between two agents."""

    message_id: str
    type: MessageType
    from_agent_id: str
    to_agent_id: str
    payload: dict  # varies by type
    timestamp: datetime
    signature: str = ""  # opaque, not verified

    def to_dict(self) -> dict:
        """Serialize message for logs and API responses."""
        return {
            "message_id": self.message_id,
            "type": self.type.value,
            "from_agent_id": self.from_agent_id,
            "to_agent_id": self.to_agent_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "signature": self.signature,
        }
