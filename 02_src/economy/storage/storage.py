"""SQLite storage implementation and payment state machine."""

import asyncio
import json
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..errors import InvalidTransitionError, NotFoundError
from ..models import (
    AgentProfile,
    LogType,
    Message,
    MessageType,
    PaymentEvent,
    PaymentState,
    PaymentStatus,
    TransactionLogEntry,
    WalletHandle,
    allowed_transitions,
    can_transition,
    replay_status,
)


def _dumps(value) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _loads(value: str | None):
    if value is None:
        return None
    return json.loads(value)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class IStorage(Protocol):
    """Single source of truth for agents, queues, payments and logs."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Agents
    async def register_agent(self, profile: AgentProfile) -> None:
        """Insert or replace an agent profile."""
        ...

    async def get_agent(self, agent_id: str) -> AgentProfile | None:
        """Get an agent profile by ID."""
        ...

    async def list_agents(self) -> list[AgentProfile]:
        """List agents in registration order."""
        ...

    async def set_agent_online(self, agent_id: str, online: bool) -> None:
        """Flip an agent's online flag."""
        ...

    # Messages
    async def store_message(self, message: Message) -> None:
        """Append a message to the recipient's queue."""
        ...

    async def get_messages(self, agent_id: str) -> list[Message]:
        """Get an agent's queue without removing it."""
        ...

    async def clear_messages(self, agent_id: str) -> None:
        """Empty an agent's queue."""
        ...

    async def drain_messages(self, agent_id: str) -> list[Message]:
        """Atomically take every queued message for an agent."""
        ...

    # Payments
    async def store_payment(self, payment: PaymentState) -> None:
        """Insert or overwrite a payment."""
        ...

    async def get_payment(self, payment_id: str) -> PaymentState | None:
        """Get a payment with its event history."""
        ...

    async def get_payment_events(self, payment_id: str) -> list[PaymentEvent]:
        """Get a payment's event history."""
        ...

    async def list_payments(self, agent_id: str | None = None) -> list[PaymentState]:
        """List payments, optionally for one buyer or seller."""
        ...

    async def transition(
        self,
        payment_id: str,
        new_status: PaymentStatus,
        actor: str,
        metadata: dict | None = None,
        expected_status: PaymentStatus | None = None,
    ) -> PaymentState:
        """Move a payment to a new status if the state machine allows it."""
        ...

    async def can_refund(self, payment_id: str, now: datetime | None = None) -> bool:
        """Check whether a payment is inside its refund window."""
        ...

    # Logs
    async def add_log(self, entry: TransactionLogEntry) -> None:
        """Append a transaction log entry."""
        ...

    async def get_logs(self, agent_id: str | None = None) -> list[TransactionLogEntry]:
        """Get log entries in insertion order."""
        ...

    async def clear_logs(self) -> None:
        """Drop all log entries."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation (in-memory by default)."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        # transition() and drain_messages() read then write; serialize per resource
        self._payment_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._queue_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def _log(
        self,
        agent_id: str,
        log_type: LogType,
        message: str,
        data: dict | None = None,
    ) -> None:
        await self.add_log(
            TransactionLogEntry(
                id=str(uuid.uuid4()),
                timestamp=self._now(),
                agent_id=agent_id,
                type=log_type,
                message=message,
                data=data,
            )
        )

    # Agents
    async def register_agent(self, profile: AgentProfile) -> None:
        """Insert or replace an agent profile, keeping its registration order."""
        wallet = profile.session_wallet
        await self._db.execute(
            """
            INSERT INTO agents
            (agent_id, agent_name, services, fixed_pricing, wallet_id,
             wallet_address, is_autonomous, is_online, registered_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(agent_id) DO UPDATE SET
                agent_name = excluded.agent_name,
                services = excluded.services,
                fixed_pricing = excluded.fixed_pricing,
                wallet_id = excluded.wallet_id,
                wallet_address = excluded.wallet_address,
                is_autonomous = excluded.is_autonomous,
                is_online = excluded.is_online
            """,
            (
                profile.agent_id,
                profile.agent_name,
                json.dumps(profile.services),
                _dumps(profile.fixed_pricing),
                wallet.wallet_id,
                wallet.wallet_address,
                int(wallet.is_autonomous),
                int(profile.is_online),
                self._now().isoformat(),
            ),
        )
        await self._db.commit()

        await self._log(
            profile.agent_id,
            LogType.MESSAGE,
            f"Agent registered: {profile.agent_name}",
            {
                "agent_id": profile.agent_id,
                "agent_name": profile.agent_name,
                "services": profile.services,
                "session_wallet": wallet.wallet_address,
            },
        )

    def _row_to_agent(self, row) -> AgentProfile:
        pricing = json.loads(row[3])
        return AgentProfile(
            agent_id=row[0],
            agent_name=row[1],
            services=json.loads(row[2]),
            fixed_pricing={k: Decimal(v) for k, v in pricing.items()},
            session_wallet=WalletHandle(
                wallet_id=row[4],
                wallet_address=row[5],
                is_autonomous=bool(row[6]),
            ),
            is_online=bool(row[7]),
        )

    async def get_agent(self, agent_id: str) -> AgentProfile | None:
        """Get an agent profile by ID."""
        cursor = await self._db.execute(
            """
            SELECT agent_id, agent_name, services, fixed_pricing, wallet_id,
                   wallet_address, is_autonomous, is_online
            FROM agents
            WHERE agent_id = ?
            """,
            (agent_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return self._row_to_agent(row)

    async def list_agents(self) -> list[AgentProfile]:
        """List agents in registration order."""
        cursor = await self._db.execute(
            """
            SELECT agent_id, agent_name, services, fixed_pricing, wallet_id,
                   wallet_address, is_autonomous, is_online
            FROM agents
            ORDER BY rowid ASC
            """
        )
        rows = await cursor.fetchall()
        return [self._row_to_agent(row) for row in rows]

    async def set_agent_online(self, agent_id: str, online: bool) -> None:
        """Flip an agent's online flag. Unknown ids are ignored."""
        await self._db.execute(
            "UPDATE agents SET is_online = ? WHERE agent_id = ?",
            (int(online), agent_id),
        )
        await self._db.commit()

    # Messages
    async def store_message(self, message: Message) -> None:
        """Append a message to the recipient's queue."""
        await self._db.execute(
            """
            INSERT INTO messages
            (message_id, type, from_agent_id, to_agent_id, payload, timestamp, signature)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.type.value,
                message.from_agent_id,
                message.to_agent_id,
                _dumps(message.payload),
                message.timestamp.isoformat(),
                message.signature,
            ),
        )
        await self._db.commit()

        await self._log(
            message.from_agent_id,
            LogType.SENT,
            f"Message sent: {message.type.value}",
            message.to_dict(),
        )

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            message_id=row[1],
            type=MessageType(row[2]),
            from_agent_id=row[3],
            to_agent_id=row[4],
            payload=json.loads(row[5]),
            timestamp=_parse_ts(row[6]),
            signature=row[7],
        )

    async def _fetch_queue(self, agent_id: str) -> list:
        cursor = await self._db.execute(
            """
            SELECT seq, message_id, type, from_agent_id, to_agent_id,
                   payload, timestamp, signature
            FROM messages
            WHERE to_agent_id = ?
            ORDER BY seq ASC
            """,
            (agent_id,),
        )
        return list(await cursor.fetchall())

    async def get_messages(self, agent_id: str) -> list[Message]:
        """Get an agent's queue in enqueue order without removing it."""
        rows = await self._fetch_queue(agent_id)
        return [self._row_to_message(row) for row in rows]

    async def clear_messages(self, agent_id: str) -> None:
        """Empty an agent's queue."""
        async with self._queue_locks[agent_id]:
            await self._db.execute(
                "DELETE FROM messages WHERE to_agent_id = ?", (agent_id,)
            )
            await self._db.commit()

    async def drain_messages(self, agent_id: str) -> list[Message]:
        """
        Atomically take every queued message for an agent.

        Only the returned messages are removed; anything enqueued after the
        read stays queued for the next drain.
        """
        async with self._queue_locks[agent_id]:
            rows = await self._fetch_queue(agent_id)
            if not rows:
                return []

            await self._db.execute(
                "DELETE FROM messages WHERE to_agent_id = ? AND seq <= ?",
                (agent_id, rows[-1][0]),
            )
            await self._db.commit()

        return [self._row_to_message(row) for row in rows]

    # Payments
    async def store_payment(self, payment: PaymentState) -> None:
        """
        Insert a payment, overwriting any record with the same ID.

        An empty event history is seeded with the payment's initial status,
        attributed to the buyer.

        Raises:
            ValueError: If the status differs from the one the history replays to
            InvalidTransitionError: If the history contains an illegal step
        """
        if payment.events:
            replayed = replay_status(payment.events, payment.payment_id)
            if replayed != payment.status:
                raise ValueError(
                    f"Payment {payment.payment_id} has status {payment.status.value} "
                    f"but its events end in {replayed.value}"
                )
        else:
            payment.events.append(
                PaymentEvent(
                    status=payment.status,
                    timestamp=self._now(),
                    actor=payment.buyer_agent_id,
                )
            )

        async with self._payment_locks[payment.payment_id]:
            await self._db.execute(
                """
                INSERT OR REPLACE INTO payments
                (payment_id, status, buyer_agent_id, seller_agent_id, amount,
                 service_type, transaction_signature, refundable_until,
                 delivery_confirmed_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.payment_id,
                    payment.status.value,
                    payment.buyer_agent_id,
                    payment.seller_agent_id,
                    str(payment.amount),
                    payment.service_type,
                    payment.transaction_signature,
                    payment.refundable_until.isoformat(),
                    payment.delivery_confirmed_at.isoformat()
                    if payment.delivery_confirmed_at
                    else None,
                    payment.created_at.isoformat(),
                    payment.updated_at.isoformat(),
                ),
            )
            await self._db.execute(
                "DELETE FROM payment_events WHERE payment_id = ?",
                (payment.payment_id,),
            )
            await self._db.executemany(
                """
                INSERT INTO payment_events (payment_id, status, timestamp, actor, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        payment.payment_id,
                        event.status.value,
                        event.timestamp.isoformat(),
                        event.actor,
                        _dumps(event.metadata),
                    )
                    for event in payment.events
                ],
            )
            await self._db.commit()

        await self._log(
            payment.buyer_agent_id,
            LogType.SENT,
            f"Payment {payment.status.value}: ${payment.amount}",
            payment.to_dict(),
        )

    async def get_payment_events(self, payment_id: str) -> list[PaymentEvent]:
        """Get a payment's event history in causal order (empty if unknown)."""
        cursor = await self._db.execute(
            """
            SELECT status, timestamp, actor, metadata
            FROM payment_events
            WHERE payment_id = ?
            ORDER BY seq ASC
            """,
            (payment_id,),
        )
        rows = await cursor.fetchall()

        return [
            PaymentEvent(
                status=PaymentStatus(row[0]),
                timestamp=_parse_ts(row[1]),
                actor=row[2],
                metadata=_loads(row[3]),
            )
            for row in rows
        ]

    _PAYMENT_COLUMNS = """
        payment_id, status, buyer_agent_id, seller_agent_id, amount,
        service_type, transaction_signature, refundable_until,
        delivery_confirmed_at, created_at, updated_at
    """

    async def _row_to_payment(self, row) -> PaymentState:
        return PaymentState(
            payment_id=row[0],
            status=PaymentStatus(row[1]),
            buyer_agent_id=row[2],
            seller_agent_id=row[3],
            amount=Decimal(row[4]),
            service_type=row[5],
            transaction_signature=row[6],
            refundable_until=_parse_ts(row[7]),
            delivery_confirmed_at=_parse_ts(row[8]),
            created_at=_parse_ts(row[9]),
            updated_at=_parse_ts(row[10]),
            events=await self.get_payment_events(row[0]),
        )

    async def get_payment(self, payment_id: str) -> PaymentState | None:
        """Get a payment with its event history."""
        cursor = await self._db.execute(
            f"SELECT {self._PAYMENT_COLUMNS} FROM payments WHERE payment_id = ?",
            (payment_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return await self._row_to_payment(row)

    async def list_payments(self, agent_id: str | None = None) -> list[PaymentState]:
        """List payments in insertion order, optionally for one buyer or seller."""
        if agent_id:
            cursor = await self._db.execute(
                f"""
                SELECT {self._PAYMENT_COLUMNS}
                FROM payments
                WHERE buyer_agent_id = ? OR seller_agent_id = ?
                ORDER BY rowid ASC
                """,
                (agent_id, agent_id),
            )
        else:
            cursor = await self._db.execute(
                f"SELECT {self._PAYMENT_COLUMNS} FROM payments ORDER BY rowid ASC"
            )
        rows = await cursor.fetchall()
        return [await self._row_to_payment(row) for row in rows]

    async def transition(
        self,
        payment_id: str,
        new_status: PaymentStatus,
        actor: str,
        metadata: dict | None = None,
        expected_status: PaymentStatus | None = None,
    ) -> PaymentState:
        """
        Move a payment to a new status if the state machine allows it.

        This is the only path that changes a stored payment's status or
        event history.

        Raises:
            NotFoundError: If the payment is unknown
            InvalidTransitionError: If new_status is not reachable from the
                current status, or the current status is not expected_status;
                nothing is modified
        """
        new_status = PaymentStatus(new_status)

        async with self._payment_locks[payment_id]:
            payment = await self.get_payment(payment_id)
            if payment is None:
                raise NotFoundError("payment", payment_id)

            if not can_transition(payment.status, new_status) or (
                expected_status is not None and payment.status != expected_status
            ):
                raise InvalidTransitionError(
                    payment_id,
                    payment.status,
                    new_status,
                    allowed_transitions(payment.status),
                )

            # updated_at never goes backwards, even if the clock does
            now = max(self._now(), payment.updated_at)
            event = PaymentEvent(
                status=new_status,
                timestamp=now,
                actor=actor,
                metadata=metadata,
            )
            if new_status == PaymentStatus.COMPLETED:
                payment.delivery_confirmed_at = now

            await self._db.execute(
                """
                UPDATE payments
                SET status = ?, updated_at = ?, delivery_confirmed_at = ?
                WHERE payment_id = ?
                """,
                (
                    new_status.value,
                    now.isoformat(),
                    payment.delivery_confirmed_at.isoformat()
                    if payment.delivery_confirmed_at
                    else None,
                    payment_id,
                ),
            )
            await self._db.execute(
                """
                INSERT INTO payment_events (payment_id, status, timestamp, actor, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (payment_id, new_status.value, now.isoformat(), actor, _dumps(metadata)),
            )
            await self._db.commit()

            payment.status = new_status
            payment.updated_at = now
            payment.events.append(event)

        await self._log(
            actor,
            LogType.MESSAGE,
            f"Payment {payment_id} → {new_status.value}",
            {
                "payment_id": payment_id,
                "new_status": new_status.value,
                "actor": actor,
                "metadata": metadata,
            },
        )
        return payment

    async def can_refund(self, payment_id: str, now: datetime | None = None) -> bool:
        """True iff the payment awaits delivery and the refund window is open."""
        payment = await self.get_payment(payment_id)
        if payment is None:
            return False

        now = now or self._now()
        return (
            payment.status == PaymentStatus.DELIVERY_PENDING
            and now < payment.refundable_until
        )

    # Logs
    async def add_log(self, entry: TransactionLogEntry) -> None:
        """Append a transaction log entry."""
        await self._db.execute(
            """
            INSERT INTO transaction_logs (id, timestamp, agent_id, type, message, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id or str(uuid.uuid4()),
                entry.timestamp.isoformat(),
                entry.agent_id,
                entry.type.value,
                entry.message,
                _dumps(entry.data),
            ),
        )
        await self._db.commit()

    async def get_logs(self, agent_id: str | None = None) -> list[TransactionLogEntry]:
        """Get log entries in insertion order, optionally for one agent."""
        if agent_id:
            cursor = await self._db.execute(
                """
                SELECT id, timestamp, agent_id, type, message, data
                FROM transaction_logs
                WHERE agent_id = ?
                ORDER BY seq ASC
                """,
                (agent_id,),
            )
        else:
            cursor = await self._db.execute(
                """
                SELECT id, timestamp, agent_id, type, message, data
                FROM transaction_logs
                ORDER BY seq ASC
                """
            )
        rows = await cursor.fetchall()

        return [
            TransactionLogEntry(
                id=row[0],
                timestamp=_parse_ts(row[1]),
                agent_id=row[2],
                type=LogType(row[3]),
                message=row[4],
                data=_loads(row[5]),
            )
            for row in rows
        ]

    async def clear_logs(self) -> None:
        """Drop all log entries."""
        await self._db.execute("DELETE FROM transaction_logs")
        await self._db.commit()

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        tables = [
            "agents",
            "messages",
            "payment_events",
            "payments",
            "transaction_logs",
        ]

        for table in tables:
            await self._db.execute(f"DELETE FROM {table}")

        await self._db.commit()
        self._payment_locks.clear()
        self._queue_locks.clear()
