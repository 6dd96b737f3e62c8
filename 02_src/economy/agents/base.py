"""Shared agent plumbing: identity, idempotency gate, dispatch by type."""

from typing import Awaitable, Callable, Protocol

from ..dedup import MessageDeduplicator
from ..logging_config import get_logger
from ..mailbox import Mailbox
from ..models import Message, MessageType, WalletHandle
from ..payments import IPaymentProvider
from ..storage import IStorage
from ..tracker import Tracker

logger = get_logger(__name__)


MessageHandler = Callable[[Message], Awaitable[None]]


class IAgent(Protocol):
    """A participant that the router delivers messages to."""

    @property
    def agent_id(self) -> str:
        """Agent identifier."""
        ...

    async def initialize(self) -> None:
        """Register in the agent registry."""
        ...

    async def handle_message(self, message: Message) -> None:
        """Handle one inbound message."""
        ...


class BaseAgent:
    """Agent with an idempotent message handling gate."""

    def __init__(
        self,
        agent_id: str,
        agent_name: str,
        wallet: WalletHandle,
        storage: IStorage,
        tracker: Tracker,
        provider: IPaymentProvider,
        deduplicator: MessageDeduplicator | None = None,
    ):
        self._agent_id = agent_id
        self._agent_name = agent_name
        self._wallet = wallet
        self._storage = storage
        self._tracker = tracker
        self._provider = provider
        self._dedup = deduplicator or MessageDeduplicator()
        self._mailbox = Mailbox(agent_id, storage)

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def agent_name(self) -> str:
        return self._agent_name

    @property
    def wallet(self) -> WalletHandle:
        return self._wallet

    @property
    def mailbox(self) -> Mailbox:
        return self._mailbox

    def _handlers(self) -> dict[MessageType, MessageHandler]:
        """Message types this agent reacts to."""
        return {}

    async def handle_message(self, message: Message) -> None:
        """
        Handle one inbound message at most once per message id.

        The id is claimed before any processing so a duplicate arriving while
        the first copy is still being handled is also suppressed. If handling
        fails the claim is released and the error re-raised, so a later
        redelivery can be processed.
        """
        if not await self._dedup.claim(message.message_id):
            await self._tracker.message(
                self._agent_id,
                f"Duplicate message ignored: {message.type.value}",
                {"message_id": message.message_id, "from_agent_id": message.from_agent_id},
            )
            return

        try:
            await self._tracker.received(
                self._agent_id,
                f"Received {message.type.value}",
                message.to_dict(),
            )

            handler = self._handlers().get(message.type)
            if handler is None:
                await self._tracker.warning(
                    self._agent_id,
                    f"Unhandled message type: {message.type.value}",
                    {"message_id": message.message_id},
                )
                return

            await handler(message)
        except Exception as e:
            await self._dedup.release(message.message_id)
            logger.error(
                "Agent %s failed to handle %s %s: %s",
                self._agent_id,
                message.type.value,
                message.message_id,
                e,
                extra={"agent_id": self._agent_id, "message_id": message.message_id},
            )
            await self._tracker.warning(
                self._agent_id,
                f"Failed to handle {message.type.value}: {e}",
                {"message_id": message.message_id, "error": type(e).__name__},
            )
            raise
