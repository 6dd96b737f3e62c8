"""Processed-message registry for idempotent message handling.

An agent claims a message id before handling it and releases the claim if
handling fails, so that a redelivery of the same id can be processed again.
Claims expire after a TTL so the registry does not grow without bound.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import dedup_ttl, resolve_db_path
from ..logging_config import get_logger

logger = get_logger(__name__)


class IDedupStore(Protocol):
    """Backing storage for claimed message ids."""

    async def add_if_absent(self, key: str, expires_at: datetime) -> bool:
        """Record key unless a live record exists. Returns True if recorded."""
        ...

    async def discard(self, key: str) -> None:
        """Forget a key."""
        ...

    async def contains(self, key: str, now: datetime) -> bool:
        """Check for a live record."""
        ...

    async def purge_expired(self, now: datetime) -> int:
        """Remove expired records. Returns count removed."""
        ...

    async def clear(self) -> None:
        """Forget every key."""
        ...


class InMemoryDedupStore:
    """Dict-backed store for tests and the single-process demo."""

    def __init__(self):
        self._records: dict[str, datetime] = {}

    async def add_if_absent(self, key: str, expires_at: datetime) -> bool:
        existing = self._records.get(key)
        if existing is not None and existing > datetime.now(timezone.utc):
            return False
        self._records[key] = expires_at
        return True

    async def discard(self, key: str) -> None:
        self._records.pop(key, None)

    async def contains(self, key: str, now: datetime) -> bool:
        expires_at = self._records.get(key)
        return expires_at is not None and expires_at > now

    async def purge_expired(self, now: datetime) -> int:
        expired = [key for key, expires_at in self._records.items() if expires_at <= now]
        for key in expired:
            del self._records[key]
        return len(expired)

    async def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class SqliteDedupStore:
    """SQLite-backed store; survives restarts when given a file path."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the connection and create the table."""
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS processed_messages (
                key TEXT PRIMARY KEY,
                expires_at TEXT NOT NULL
            )
            """
        )
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Dedup store not initialized")
        return self._conn

    async def add_if_absent(self, key: str, expires_at: datetime) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        async with self._lock:
            # Drop a stale claim first so the insert below can take its place
            await self._db.execute(
                "DELETE FROM processed_messages WHERE key = ? AND expires_at <= ?",
                (key, now),
            )
            cursor = await self._db.execute(
                "INSERT OR IGNORE INTO processed_messages (key, expires_at) VALUES (?, ?)",
                (key, expires_at.isoformat()),
            )
            await self._db.commit()
            return cursor.rowcount == 1

    async def discard(self, key: str) -> None:
        async with self._lock:
            await self._db.execute("DELETE FROM processed_messages WHERE key = ?", (key,))
            await self._db.commit()

    async def contains(self, key: str, now: datetime) -> bool:
        cursor = await self._db.execute(
            "SELECT 1 FROM processed_messages WHERE key = ? AND expires_at > ?",
            (key, now.isoformat()),
        )
        return await cursor.fetchone() is not None

    async def purge_expired(self, now: datetime) -> int:
        async with self._lock:
            cursor = await self._db.execute(
                "DELETE FROM processed_messages WHERE expires_at <= ?",
                (now.isoformat(),),
            )
            await self._db.commit()
            return cursor.rowcount

    async def clear(self) -> None:
        async with self._lock:
            await self._db.execute("DELETE FROM processed_messages")
            await self._db.commit()


class MessageDeduplicator:
    """
    Claim/release registry of processed message ids.

    Usage:
        dedup = MessageDeduplicator(InMemoryDedupStore())

        if not await dedup.claim(message.message_id):
            return  # duplicate
        try:
            await handle(message)
        except Exception:
            await dedup.release(message.message_id)
            raise
    """

    def __init__(self, store: IDedupStore | None = None, ttl: timedelta | None = None):
        self._store = store if store is not None else InMemoryDedupStore()
        self._ttl = ttl if ttl is not None else dedup_ttl()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def claim(self, message_id: str) -> bool:
        """Record a message id. Returns False if it was already claimed."""
        expires_at = datetime.now(timezone.utc) + self._ttl
        return await self._store.add_if_absent(message_id, expires_at)

    async def release(self, message_id: str) -> None:
        """Forget a claim so the message can be handled again."""
        await self._store.discard(message_id)
        logger.debug("Released claim on message %s", message_id, extra={"message_id": message_id})

    async def is_processed(self, message_id: str) -> bool:
        return await self._store.contains(message_id, datetime.now(timezone.utc))

    async def purge_expired(self) -> int:
        """Evict claims older than the TTL."""
        removed = await self._store.purge_expired(datetime.now(timezone.utc))
        if removed:
            logger.info("Evicted %s expired message claims", removed)
        return removed

    async def clear(self) -> None:
        await self._store.clear()
