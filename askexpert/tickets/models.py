from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from askexpert.messaging.models import ConversationRef, DeliveryHandle

from .state import TicketState, TicketStatus


@dataclass(slots=True)
class Ticket:
    """A question escalated from a user to the support team."""

    id: str
    status: TicketStatus
    created_at: datetime
    title: str
    description: str | None
    original_question: str | None
    knowledge_base_answer: str | None
    requester_id: str
    requester_display_name: str
    requester_principal_name: str | None
    requester_given_name: str | None
    requester_conversation: ConversationRef
    last_modified_by_name: str
    last_modified_by_id: str
    closed_at: datetime | None = None
    assigned_at: datetime | None = None
    assigned_to_name: str | None = None
    assigned_to_id: str | None = None
    team_thread: DeliveryHandle | None = None
    version: int = 1

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to_id is not None

    @property
    def state(self) -> TicketState:
        if self.status is TicketStatus.CLOSED:
            return TicketState.CLOSED
        return TicketState.OPEN_ASSIGNED if self.is_assigned else TicketState.OPEN_UNASSIGNED
