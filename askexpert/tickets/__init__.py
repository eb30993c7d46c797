"""Ticket records, their state machine, storage and lifecycle."""

from .models import Ticket
from .state import TicketAction, TicketState, TicketStateMachine, TicketStatus, UnknownTicketActionError
from .repository import InMemoryTicketStore, PostgresTicketStore, TicketLocks, TicketStore
from .lifecycle import (
    ConcurrentTicketUpdateError,
    ConfigurationMissingError,
    TicketError,
    TicketLifecycle,
    TicketNotFoundError,
    TicketPersistenceError,
)

__all__ = [
    "ConcurrentTicketUpdateError",
    "ConfigurationMissingError",
    "InMemoryTicketStore",
    "PostgresTicketStore",
    "Ticket",
    "TicketAction",
    "TicketError",
    "TicketLifecycle",
    "TicketLocks",
    "TicketNotFoundError",
    "TicketPersistenceError",
    "TicketState",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStore",
    "UnknownTicketActionError",
]
