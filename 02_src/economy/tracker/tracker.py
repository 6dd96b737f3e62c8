"""Tracker implementation for writing transaction log entries."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..logging_config import get_logger
from ..models import LogType, TransactionLogEntry
from ..storage import IStorage

logger = get_logger(__name__)


class ITracker(Protocol):
    """Appending TransactionLog entries on behalf of agents."""

    async def track(
        self,
        agent_id: str,
        log_type: LogType,
        message: str,
        data: dict | None = None,
    ) -> TransactionLogEntry:
        """Create a log entry and save it to Storage."""
        ...


class Tracker:
    """Writes transaction log entries to Storage and mirrors them to logging."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def track(
        self,
        agent_id: str,
        log_type: LogType,
        message: str,
        data: dict | None = None,
        level: int = logging.INFO,
    ) -> TransactionLogEntry:
        """Create a log entry and save it to Storage."""
        entry = TransactionLogEntry(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            agent_id=agent_id,
            type=LogType(log_type),
            message=message,
            data=data,
        )
        await self._storage.add_log(entry)
        logger.log(
            level,
            "[%s] %s: %s",
            entry.type.value,
            agent_id,
            message,
            extra={"agent_id": agent_id},
        )
        return entry

    async def message(self, agent_id: str, message: str, data: dict | None = None) -> None:
        await self.track(agent_id, LogType.MESSAGE, message, data)

    async def sent(self, agent_id: str, message: str, data: dict | None = None) -> None:
        await self.track(agent_id, LogType.SENT, message, data)

    async def received(self, agent_id: str, message: str, data: dict | None = None) -> None:
        await self.track(agent_id, LogType.RECEIVED, message, data)

    async def warning(self, agent_id: str, message: str, data: dict | None = None) -> None:
        """Log a problem that does not stop processing."""
        await self.track(agent_id, LogType.MESSAGE, message, data, level=logging.WARNING)
