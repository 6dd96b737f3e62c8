"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .agents import BuyerAgent, SellerAgent
from .config import (
    BUYER_AGENT_ID,
    BUYER_AGENT_NAME,
    BUYER_WALLET_LIMIT,
    MEMORY_DB,
    SELLER_AGENT_ID,
    SELLER_AGENT_NAME,
    SELLER_WALLET_LIMIT,
    delivery_delay,
    poll_interval,
    resolve_db_path,
    wallet_fallback,
)
from .dedup import IDedupStore, InMemoryDedupStore, MessageDeduplicator, SqliteDedupStore
from .errors import NotInitializedError, ProviderCallError
from .logging_config import get_logger
from .models import Message, PaymentState, WalletHandle
from .payments import (
    HttpPaymentProvider,
    IPaymentProvider,
    MockPaymentProvider,
    create_payment_provider,
)
from .router import MessageRouter
from .storage import IStorage, Storage
from .tracker import Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap, lifecycle and agent management."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Stop the agents and clear all data."""
        ...

    async def initialize_agents(self) -> None:
        """Create wallets, register both agents and start polling."""
        ...

    async def trigger_purchase(self, quantity: int) -> Message:
        """Ask the buyer to start a purchase."""
        ...

    def is_initialized(self) -> bool:
        """True once both agents exist."""
        ...


class Application:
    """Owns the store, the payment provider, both agents and the router."""

    def __init__(
        self,
        db_path: str | None = None,
        provider: IPaymentProvider | None = None,
        poll_interval_seconds: float | None = None,
        delivery_delay_seconds: float | None = None,
        use_wallet_fallback: bool | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._provider_override = provider
        self._poll_interval = (
            poll_interval_seconds if poll_interval_seconds is not None else poll_interval()
        )
        self._delivery_delay = (
            delivery_delay_seconds if delivery_delay_seconds is not None else delivery_delay()
        )
        self._wallet_fallback = (
            use_wallet_fallback if use_wallet_fallback is not None else wallet_fallback()
        )

        # Components (will be initialized in start())
        self._storage: Storage | None = None
        self._tracker: Tracker | None = None
        self._provider: IPaymentProvider | None = None
        # Provider that the wallet fallback replaced; still owns an open client
        self._replaced_provider: IPaymentProvider | None = None
        self._dedup_store: IDedupStore | None = None
        self._router: MessageRouter | None = None

        # Agents (will be created in initialize_agents())
        self._buyer: BuyerAgent | None = None
        self._seller: SellerAgent | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Tracker (depends on Storage)
        self._tracker = Tracker(self._storage)

        # 3. Payment provider (no internal dependencies)
        self._provider = self._provider_override or create_payment_provider()
        logger.info("Payment provider initialized: %s", type(self._provider).__name__)

        # 4. Processed-message registry, persistent only with a file database
        if self._db_path == MEMORY_DB:
            self._dedup_store = None
        else:
            sqlite_store = SqliteDedupStore(self._db_path)
            await sqlite_store.init()
            self._dedup_store = sqlite_store

        # 5. Router (depends on Storage); agents register on initialize_agents()
        self._router = MessageRouter(self._storage, self._poll_interval)
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._router:
            await self._router.stop()
        self._buyer = None
        self._seller = None
        if isinstance(self._dedup_store, SqliteDedupStore):
            await self._dedup_store.close()
        for provider in (self._provider, self._replaced_provider):
            if isinstance(provider, HttpPaymentProvider):
                await provider.close()
        self._replaced_provider = None
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    def _deduplicator(self) -> MessageDeduplicator:
        return MessageDeduplicator(self._dedup_store or InMemoryDedupStore())

    async def _create_wallet(self, owner_ref: str, limit) -> WalletHandle:
        try:
            return await self.provider.create_wallet(owner_ref, limit)
        except ProviderCallError as e:
            if not self._wallet_fallback or isinstance(self._provider, MockPaymentProvider):
                raise
            logger.warning(
                "Wallet creation failed (%s), falling back to mock wallets for demo",
                e.message,
                extra={"agent_id": owner_ref},
            )
            self._replaced_provider = self._provider
            self._provider = MockPaymentProvider()
            return await self._provider.create_wallet(owner_ref, limit)

    async def initialize_agents(self) -> None:
        """
        Create both wallets, then both agents, then start polling.

        Agents are only assigned after both wallets exist, so a provider
        failure leaves the application uninitialized. Re-initializing resets
        first.
        """
        if self.is_initialized():
            logger.info("Agents already initialized, resetting first")
            await self.reset()

        storage = self.storage
        logger.info("Initializing agents")

        buyer_wallet = await self._create_wallet(BUYER_AGENT_ID, BUYER_WALLET_LIMIT)
        buyer_provider = self._provider
        seller_wallet = await self._create_wallet(SELLER_AGENT_ID, SELLER_WALLET_LIMIT)
        if self._provider is not buyer_provider:
            # Fallback happened on the seller wallet; both must share a provider
            buyer_wallet = await self._provider.create_wallet(BUYER_AGENT_ID, BUYER_WALLET_LIMIT)

        buyer = BuyerAgent(
            agent_id=BUYER_AGENT_ID,
            agent_name=BUYER_AGENT_NAME,
            wallet=buyer_wallet,
            storage=storage,
            tracker=self._tracker,
            provider=self._provider,
            deduplicator=self._deduplicator(),
        )
        seller = SellerAgent(
            agent_id=SELLER_AGENT_ID,
            agent_name=SELLER_AGENT_NAME,
            wallet=seller_wallet,
            storage=storage,
            tracker=self._tracker,
            provider=self._provider,
            deduplicator=self._deduplicator(),
            delivery_seconds=self._delivery_delay,
        )

        await seller.initialize()
        await buyer.initialize()

        self._buyer = buyer
        self._seller = seller

        self._router.register(seller)
        self._router.register(buyer)
        await self._router.start()
        logger.info("Agents initialized and polling started")

    async def trigger_purchase(self, quantity: int) -> Message:
        """
        Start a purchase of `quantity` tokens through the buyer.

        Raises:
            ValueError: If quantity is not positive
            NotInitializedError: If agents have not been initialized
        """
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")
        return await self.buyer.purchase_tokens(quantity)

    async def dispute_payment(self, payment_id: str, reason: str) -> PaymentState:
        """Open a dispute on behalf of the buyer."""
        return await self.buyer.dispute_payment(payment_id, reason)

    async def resolve_dispute(self, payment_id: str, refund: bool) -> PaymentState:
        """Settle a dispute on behalf of the seller."""
        return await self.seller.resolve_dispute(payment_id, refund)

    async def reset(self) -> None:
        """Stop polling, drop the agents and clear all stored data."""
        # 1. Pause active processes
        if self._router:
            await self._router.stop()
            self._router.clear()

        # 2. Drop agents
        self._buyer = None
        self._seller = None

        # 3. Clear storage
        if self._dedup_store:
            await self._dedup_store.clear()
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

        logger.info("Reset complete")

    def is_initialized(self) -> bool:
        return self._buyer is not None and self._seller is not None

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def tracker(self) -> Tracker:
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def provider(self) -> IPaymentProvider:
        if not self._provider:
            raise RuntimeError("Application not started")
        return self._provider

    @property
    def router(self) -> MessageRouter:
        if not self._router:
            raise RuntimeError("Application not started")
        return self._router

    @property
    def buyer(self) -> BuyerAgent:
        if not self._buyer:
            raise NotInitializedError("buyer access")
        return self._buyer

    @property
    def seller(self) -> SellerAgent:
        if not self._seller:
            raise NotInitializedError("seller access")
        return self._seller
