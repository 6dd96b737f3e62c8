"""Per-agent message channel over the Storage queue."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..logging_config import get_logger
from ..models import Message, MessageType
from ..storage import IStorage

logger = get_logger(__name__)

MOCK_SIGNATURE = "mock_signature"


class IMailbox(Protocol):
    """Inbound queue of one agent plus the ability to send to others."""

    @property
    def agent_id(self) -> str:
        """Owner of the inbound queue."""
        ...

    async def send(
        self, to_agent_id: str, message_type: MessageType, payload: dict
    ) -> Message:
        """Build a message from the owner and enqueue it for the recipient."""
        ...

    async def drain(self) -> list[Message]:
        """Take every queued message for the owner, in enqueue order."""
        ...


class Mailbox:
    """Mailbox backed by Storage message queues."""

    def __init__(self, agent_id: str, storage: IStorage):
        self._agent_id = agent_id
        self._storage = storage

    @property
    def agent_id(self) -> str:
        return self._agent_id

    async def send(
        self, to_agent_id: str, message_type: MessageType, payload: dict
    ) -> Message:
        """Build a message from the owner and enqueue it for the recipient."""
        message = Message(
            message_id=str(uuid.uuid4()),
            type=MessageType(message_type),
            from_agent_id=self._agent_id,
            to_agent_id=to_agent_id,
            payload=payload,
            timestamp=datetime.now(timezone.utc),
            signature=MOCK_SIGNATURE,  # agents do not sign messages yet
        )
        await self.deliver(message)
        return message

    async def deliver(self, message: Message) -> None:
        """Enqueue an already-built message (used for redelivery)."""
        await self._storage.store_message(message)
        logger.debug(
            "Queued %s %s -> %s",
            message.type.value,
            message.from_agent_id,
            message.to_agent_id,
            extra={"message_id": message.message_id},
        )

    async def drain(self) -> list[Message]:
        """Take every queued message for the owner, in enqueue order."""
        return await self._storage.drain_messages(self._agent_id)

    async def pending(self) -> list[Message]:
        """Peek at the owner's queue without removing anything."""
        return await self._storage.get_messages(self._agent_id)
