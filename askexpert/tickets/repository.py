from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, AsyncIterator, Mapping, Protocol

import asyncpg

from askexpert.messaging.models import ConversationRef, DeliveryHandle

from .models import Ticket
from .state import TicketStatus


class TicketStore(Protocol):
    async def get(self, ticket_id: str) -> Ticket | None:
        ...

    async def upsert(self, ticket: Ticket) -> bool:
        ...

    def lock(self, ticket_id: str) -> AsyncContextManager[None]:
        ...


class TicketLocks:
    """Per ticket id mutexes, released once nobody waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(ticket_id, asyncio.Lock())
        self._holders[ticket_id] = self._holders.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[ticket_id] -= 1
            if not self._holders[ticket_id]:
                del self._holders[ticket_id]
                del self._locks[ticket_id]

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryTicketStore:
    """Process-local ticket store used for tests and local runs."""

    def __init__(self) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._locks = TicketLocks()

    def lock(self, ticket_id: str) -> AsyncContextManager[None]:
        return self._locks.hold(ticket_id)

    async def get(self, ticket_id: str) -> Ticket | None:
        ticket = self._tickets.get(ticket_id)
        return replace(ticket) if ticket is not None else None

    async def upsert(self, ticket: Ticket) -> bool:
        current = self._tickets.get(ticket.id)
        expected = 0 if current is None else current.version
        if ticket.version != expected + 1:
            return False
        self._tickets[ticket.id] = replace(ticket)
        return True

    def __len__(self) -> int:
        return len(self._tickets)


class PostgresTicketStore:
    """Ticket records in Postgres, versioned for optimistic concurrency."""

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        closed_at TIMESTAMPTZ NULL,
        assigned_at TIMESTAMPTZ NULL,
        assigned_to_name TEXT NULL,
        assigned_to_id TEXT NULL,
        title TEXT NOT NULL,
        description TEXT NULL,
        original_question TEXT NULL,
        knowledge_base_answer TEXT NULL,
        requester_id TEXT NOT NULL,
        requester_display_name TEXT NOT NULL,
        requester_principal_name TEXT NULL,
        requester_given_name TEXT NULL,
        requester_conversation_id TEXT NOT NULL,
        requester_service_url TEXT NULL,
        last_modified_by_name TEXT NOT NULL,
        last_modified_by_id TEXT NOT NULL,
        team_conversation_id TEXT NULL,
        team_message_id TEXT NULL,
        team_service_url TEXT NULL,
        version INTEGER NOT NULL
    )
    """

    _INSERT_TICKET_SQL = """
    INSERT INTO tickets (
        id, status, created_at, closed_at, assigned_at, assigned_to_name, assigned_to_id,
        title, description, original_question, knowledge_base_answer,
        requester_id, requester_display_name, requester_principal_name, requester_given_name,
        requester_conversation_id, requester_service_url,
        last_modified_by_name, last_modified_by_id,
        team_conversation_id, team_message_id, team_service_url, version
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19, $20, $21, $22, $23)
    ON CONFLICT (id) DO NOTHING
    RETURNING id
    """

    # Identity and question fields are never rewritten; the team thread is never cleared.
    _UPDATE_TICKET_SQL = """
    UPDATE tickets
    SET status = $2,
        closed_at = $3,
        assigned_at = $4,
        assigned_to_name = $5,
        assigned_to_id = $6,
        last_modified_by_name = $7,
        last_modified_by_id = $8,
        team_conversation_id = COALESCE($9, team_conversation_id),
        team_message_id = COALESCE($10, team_message_id),
        team_service_url = COALESCE($11, team_service_url),
        version = $12
    WHERE id = $1 AND version = $12 - 1
    RETURNING id
    """

    _SELECT_TICKET_SQL = """
    SELECT *
    FROM tickets
    WHERE id = $1
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool
        self._locks = TicketLocks()

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_TICKETS_SQL)

    def lock(self, ticket_id: str) -> AsyncContextManager[None]:
        return self._locks.hold(ticket_id)

    async def get(self, ticket_id: str) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def upsert(self, ticket: Ticket) -> bool:
        thread = ticket.team_thread
        async with self._pool.acquire() as connection:
            if ticket.version == 1:
                row = await connection.fetchrow(
                    self._INSERT_TICKET_SQL,
                    ticket.id,
                    ticket.status.value,
                    ticket.created_at,
                    ticket.closed_at,
                    ticket.assigned_at,
                    ticket.assigned_to_name,
                    ticket.assigned_to_id,
                    ticket.title,
                    ticket.description,
                    ticket.original_question,
                    ticket.knowledge_base_answer,
                    ticket.requester_id,
                    ticket.requester_display_name,
                    ticket.requester_principal_name,
                    ticket.requester_given_name,
                    ticket.requester_conversation.id,
                    ticket.requester_conversation.service_url,
                    ticket.last_modified_by_name,
                    ticket.last_modified_by_id,
                    thread.conversation_id if thread else None,
                    thread.message_id if thread else None,
                    thread.service_url if thread else None,
                    ticket.version,
                )
            else:
                row = await connection.fetchrow(
                    self._UPDATE_TICKET_SQL,
                    ticket.id,
                    ticket.status.value,
                    ticket.closed_at,
                    ticket.assigned_at,
                    ticket.assigned_to_name,
                    ticket.assigned_to_id,
                    ticket.last_modified_by_name,
                    ticket.last_modified_by_id,
                    thread.conversation_id if thread else None,
                    thread.message_id if thread else None,
                    thread.service_url if thread else None,
                    ticket.version,
                )
        return row is not None

    @staticmethod
    def _row_to_ticket(row: Mapping[str, Any]) -> Ticket:
        team_thread = None
        if row["team_conversation_id"] and row["team_message_id"]:
            team_thread = DeliveryHandle(
                conversation_id=str(row["team_conversation_id"]),
                message_id=str(row["team_message_id"]),
                service_url=row["team_service_url"],
            )
        return Ticket(
            id=str(row["id"]),
            status=TicketStatus(str(row["status"])),
            created_at=_ensure_datetime(row["created_at"]),
            closed_at=_optional_datetime(row["closed_at"]),
            assigned_at=_optional_datetime(row["assigned_at"]),
            assigned_to_name=row["assigned_to_name"],
            assigned_to_id=row["assigned_to_id"],
            title=str(row["title"]),
            description=row["description"],
            original_question=row["original_question"],
            knowledge_base_answer=row["knowledge_base_answer"],
            requester_id=str(row["requester_id"]),
            requester_display_name=str(row["requester_display_name"]),
            requester_principal_name=row["requester_principal_name"],
            requester_given_name=row["requester_given_name"],
            requester_conversation=ConversationRef(
                id=str(row["requester_conversation_id"]),
                service_url=row["requester_service_url"],
            ),
            last_modified_by_name=str(row["last_modified_by_name"]),
            last_modified_by_id=str(row["last_modified_by_id"]),
            team_thread=team_thread,
            version=int(row["version"]),
        )


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.fromisoformat(str(value))


def _optional_datetime(value: Any) -> datetime | None:
    return None if value is None else _ensure_datetime(value)
