"""MessageRouter: per-agent polling, drain once, dispatch in order."""

import asyncio
from typing import Protocol

from ..agents import IAgent
from ..config import poll_interval
from ..logging_config import get_logger
from ..mailbox import Mailbox
from ..storage import IStorage

logger = get_logger(__name__)


class IMessageRouter(Protocol):
    """Delivering queued messages to their owning agents."""

    def register(self, agent: IAgent) -> None:
        """Register an agent for polling."""
        ...

    async def start(self) -> None:
        """Start one polling task per registered agent."""
        ...

    async def stop(self) -> None:
        """Cancel polling tasks."""
        ...

    async def tick(self, agent_id: str | None = None) -> int:
        """Run one drain-and-dispatch cycle."""
        ...


class MessageRouter:
    """
    Polls each agent's mailbox on a fixed interval.

    A tick drains the queue exactly once and hands every drained message to
    the agent in enqueue order. Messages enqueued while a tick is dispatching
    (including the agent's own replies) wait for the next tick.
    """

    def __init__(self, storage: IStorage, interval: float | None = None):
        self._storage = storage
        self._interval = interval if interval is not None else poll_interval()
        self._agents: dict[str, IAgent] = {}
        self._mailboxes: dict[str, Mailbox] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    def register(self, agent: IAgent) -> None:
        """Register an agent; starts polling it if the router is running."""
        self._agents[agent.agent_id] = agent
        self._mailboxes[agent.agent_id] = Mailbox(agent.agent_id, self._storage)
        if self._running and agent.agent_id not in self._tasks:
            self._spawn(agent.agent_id)

    def agents(self) -> list[str]:
        return list(self._agents)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for agent_id in self._agents:
            self._spawn(agent_id)
        logger.info("Message router started for %d agents", len(self._agents))

    def _spawn(self, agent_id: str) -> None:
        self._tasks[agent_id] = asyncio.create_task(
            self._poll(agent_id), name=f"poll-{agent_id}"
        )

    async def stop(self) -> None:
        """Cancel polling tasks and wait for them to finish."""
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if tasks:
            logger.info("Message router stopped")

    def clear(self) -> None:
        """Forget registered agents. The router must be stopped first."""
        if self._running:
            raise RuntimeError("Cannot clear a running router")
        self._agents.clear()
        self._mailboxes.clear()

    async def _poll(self, agent_id: str) -> None:
        """Background loop for a single agent."""
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                await self._tick_agent(agent_id)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    f"Poll error for {agent_id}: {e}",
                    exc_info=True,
                    extra={"agent_id": agent_id},
                )

    async def tick(self, agent_id: str | None = None) -> int:
        """
        Run one cycle for one agent, or for every agent in registration order.

        Returns the number of messages dispatched.
        """
        if agent_id is not None:
            if agent_id not in self._agents:
                raise KeyError(f"Agent not registered: {agent_id}")
            return await self._tick_agent(agent_id)

        dispatched = 0
        for registered_id in list(self._agents):
            dispatched += await self._tick_agent(registered_id)
        return dispatched

    async def _tick_agent(self, agent_id: str) -> int:
        agent = self._agents[agent_id]
        messages = await self._mailboxes[agent_id].drain()

        for message in messages:
            try:
                await agent.handle_message(message)
            except Exception as e:
                logger.error(
                    "Handler error for %s on %s: %s",
                    agent_id,
                    message.message_id,
                    e,
                    extra={"agent_id": agent_id, "message_id": message.message_id},
                )
        return len(messages)
