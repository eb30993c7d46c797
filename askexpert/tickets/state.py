from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from askexpert.messaging.models import UserIdentity

    from .models import Ticket


class TicketStatus(str, Enum):
    """Stored status of a ticket."""

    OPEN = "open"
    CLOSED = "closed"


class TicketState(str, Enum):
    """Lifecycle state derived from status and assignment."""

    OPEN_UNASSIGNED = "open_unassigned"
    OPEN_ASSIGNED = "open_assigned"
    CLOSED = "closed"


class TicketAction(str, Enum):
    """Actions a support team member can take from the ticket card."""

    REOPEN = "ReopenTicket"
    CLOSE = "CloseTicket"
    ASSIGN_TO_SELF = "AssignToSelf"

    @classmethod
    def parse(cls, value: str | None) -> "TicketAction | None":
        if not value:
            return None
        folded = value.strip().casefold()
        for action in cls:
            if action.value.casefold() == folded:
                return action
        return None


class UnknownTicketActionError(ValueError):
    """Raised when a transition is requested for an unsupported action."""


class TicketStateMachine:
    """Apply ticket actions and check the record invariants."""

    _TARGETS: dict[TicketAction, TicketState] = {
        TicketAction.REOPEN: TicketState.OPEN_UNASSIGNED,
        TicketAction.CLOSE: TicketState.CLOSED,
        TicketAction.ASSIGN_TO_SELF: TicketState.OPEN_ASSIGNED,
    }

    @classmethod
    def initial_state(cls) -> TicketState:
        return TicketState.OPEN_UNASSIGNED

    @classmethod
    def target_state(cls, action: TicketAction) -> TicketState:
        try:
            return cls._TARGETS[action]
        except KeyError as exc:
            raise UnknownTicketActionError(f"Unknown ticket action {action!r}") from exc

    @classmethod
    def apply(cls, ticket: "Ticket", action: TicketAction, *, actor: "UserIdentity", now: datetime) -> "Ticket":
        """Return the ticket as it is after ``actor`` performed ``action``.

        The returned copy carries the next version number; the input is left
        untouched so a failed write can be discarded.
        """

        target = cls.target_state(action)
        if target is TicketState.CLOSED:
            updated = replace(ticket, status=TicketStatus.CLOSED, closed_at=now)
        elif target is TicketState.OPEN_ASSIGNED:
            updated = replace(
                ticket,
                status=TicketStatus.OPEN,
                closed_at=None,
                assigned_at=now,
                assigned_to_name=actor.name,
                assigned_to_id=actor.id,
            )
        else:
            updated = replace(
                ticket,
                status=TicketStatus.OPEN,
                closed_at=None,
                assigned_at=None,
                assigned_to_name=None,
                assigned_to_id=None,
            )

        updated = replace(
            updated,
            last_modified_by_name=actor.name,
            last_modified_by_id=actor.id,
            version=ticket.version + 1,
        )
        cls.check_invariants(updated)
        return updated

    @staticmethod
    def check_invariants(ticket: "Ticket") -> None:
        if (ticket.status is TicketStatus.CLOSED) != (ticket.closed_at is not None):
            raise ValueError(f"Ticket {ticket.id}: closed status and close time disagree")
        assignment = (ticket.assigned_at, ticket.assigned_to_name, ticket.assigned_to_id)
        if any(value is not None for value in assignment) and not all(value is not None for value in assignment):
            raise ValueError(f"Ticket {ticket.id}: assignment fields are partially set")
