"""Transaction log data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class LogType(str, Enum):
    """Direction tag of a transaction log entry."""

    SENT = "sent"
    RECEIVED = "received"
    MESSAGE = "message"


@dataclass
class TransactionLogEntry:
    """A single observability record for the log viewer."""

    id: str
    timestamp: datetime
    agent_id: str  # who produced this entry
    type: LogType
    message: str  # human-readable summary
    data: dict | None = None  # structured context for display

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "agent_id": self.agent_id,
            "type": self.type.value,
            "message": self.message,
            "data": self.data,
        }
