from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from askexpert.messaging.models import ConversationRef, DeliveryHandle
from askexpert.tickets.models import Ticket
from askexpert.tickets.repository import InMemoryTicketStore, PostgresTicketStore, TicketLocks
from askexpert.tickets.state import TicketState, TicketStatus

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class DummyAcquire:
    def __init__(self, connection):
        self._connection = connection

    async def __aenter__(self):
        return self._connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummyPool:
    def __init__(self, connection):
        self._connection = connection

    def acquire(self):
        return DummyAcquire(self._connection)


def _make_ticket(**overrides) -> Ticket:
    values = dict(
        id="ticket-1",
        status=TicketStatus.OPEN,
        created_at=NOW,
        title="VPN drops",
        description="Every ten minutes",
        original_question="why does vpn drop",
        knowledge_base_answer=None,
        requester_id="user-1",
        requester_display_name="Ada Lovelace",
        requester_principal_name="ada@example.com",
        requester_given_name="Ada",
        requester_conversation=ConversationRef(id="a:private-1", service_url="https://service.test/"),
        last_modified_by_name="Ada Lovelace",
        last_modified_by_id="user-1",
    )
    values.update(overrides)
    return Ticket(**values)


def _row(**overrides):
    row = {
        "id": "ticket-1",
        "status": "open",
        "created_at": NOW.replace(tzinfo=None),
        "closed_at": None,
        "assigned_at": NOW,
        "assigned_to_name": "Grace Hopper",
        "assigned_to_id": "expert-1",
        "title": "VPN drops",
        "description": None,
        "original_question": "why does vpn drop",
        "knowledge_base_answer": None,
        "requester_id": "user-1",
        "requester_display_name": "Ada Lovelace",
        "requester_principal_name": None,
        "requester_given_name": None,
        "requester_conversation_id": "a:private-1",
        "requester_service_url": "https://service.test/",
        "last_modified_by_name": "Grace Hopper",
        "last_modified_by_id": "expert-1",
        "team_conversation_id": "19:team;messageid=1",
        "team_message_id": "1",
        "team_service_url": "https://service.test/",
        "version": 3,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_in_memory_store_accepts_only_the_next_version():
    store = InMemoryTicketStore()
    ticket = _make_ticket()

    assert await store.upsert(ticket)
    assert not await store.upsert(ticket)
    assert not await store.upsert(replace(ticket, version=3))
    assert await store.upsert(replace(ticket, title="changed", version=2))

    stored = await store.get("ticket-1")
    assert stored.version == 2
    assert stored.title == "changed"


@pytest.mark.asyncio
async def test_in_memory_store_returns_copies():
    store = InMemoryTicketStore()
    ticket = _make_ticket()
    await store.upsert(ticket)

    ticket.title = "mutated after save"
    stored = await store.get("ticket-1")
    stored.description = "mutated after read"

    again = await store.get("ticket-1")
    assert again.title == "VPN drops"
    assert again.description == "Every ten minutes"
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_ticket_locks_are_released_after_use():
    locks = TicketLocks()

    async with locks.hold("ticket-1"):
        assert len(locks) == 1
        async with locks.hold("ticket-2"):
            assert len(locks) == 2

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_postgres_ensure_schema_creates_tickets_table():
    connection = AsyncMock()
    store = PostgresTicketStore(DummyPool(connection))

    await store.ensure_schema()

    statement = connection.execute.await_args.args[0]
    assert "CREATE TABLE IF NOT EXISTS tickets" in statement
    assert "version INTEGER NOT NULL" in statement


@pytest.mark.asyncio
async def test_postgres_first_version_is_inserted():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value={"id": "ticket-1"})
    store = PostgresTicketStore(DummyPool(connection))

    assert await store.upsert(_make_ticket())

    args = connection.fetchrow.await_args.args
    assert "INSERT INTO tickets" in args[0]
    assert "ON CONFLICT (id) DO NOTHING" in args[0]
    assert args[1] == "ticket-1"
    assert args[2] == "open"
    assert args[-1] == 1


@pytest.mark.asyncio
async def test_postgres_update_is_conditional_on_previous_version():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=None)
    store = PostgresTicketStore(DummyPool(connection))
    thread = DeliveryHandle("19:team;messageid=1", "1", "https://service.test/")

    accepted = await store.upsert(_make_ticket(team_thread=thread, version=2))

    assert accepted is False
    args = connection.fetchrow.await_args.args
    assert "UPDATE tickets" in args[0]
    assert "version = $12 - 1" in args[0]
    assert args[9:12] == ("19:team;messageid=1", "1", "https://service.test/")
    assert args[12] == 2


@pytest.mark.asyncio
async def test_postgres_get_maps_row_to_ticket():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=_row())
    store = PostgresTicketStore(DummyPool(connection))

    ticket = await store.get("ticket-1")

    assert ticket is not None
    assert ticket.state is TicketState.OPEN_ASSIGNED
    assert ticket.created_at.tzinfo is timezone.utc
    assert ticket.team_thread == DeliveryHandle("19:team;messageid=1", "1", "https://service.test/")
    assert ticket.requester_conversation.id == "a:private-1"
    assert ticket.version == 3


@pytest.mark.asyncio
async def test_postgres_get_without_thread_or_row():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=_row(team_conversation_id=None, team_message_id=None))
    store = PostgresTicketStore(DummyPool(connection))

    ticket = await store.get("ticket-1")
    assert ticket.team_thread is None

    connection.fetchrow = AsyncMock(return_value=None)
    assert await store.get("missing") is None
