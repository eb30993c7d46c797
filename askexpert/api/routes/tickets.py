from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from askexpert.api.dependencies import get_ticket_lifecycle
from askexpert.tickets.lifecycle import TicketLifecycle, TicketNotFoundError
from askexpert.tickets.models import Ticket
from askexpert.tickets.state import TicketState, TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketResponse(BaseModel):
    id: str
    status: TicketStatus
    state: TicketState
    title: str
    description: str | None
    original_question: str | None
    knowledge_base_answer: str | None
    requester_display_name: str
    requester_principal_name: str | None
    created_at: datetime
    closed_at: datetime | None
    assigned_at: datetime | None
    assigned_to_name: str | None
    last_modified_by_name: str
    version: int


TicketLifecycleDep = Annotated[TicketLifecycle, Depends(get_ticket_lifecycle)]


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse(
        id=ticket.id,
        status=ticket.status,
        state=ticket.state,
        title=ticket.title,
        description=ticket.description,
        original_question=ticket.original_question,
        knowledge_base_answer=ticket.knowledge_base_answer,
        requester_display_name=ticket.requester_display_name,
        requester_principal_name=ticket.requester_principal_name,
        created_at=ticket.created_at,
        closed_at=ticket.closed_at,
        assigned_at=ticket.assigned_at,
        assigned_to_name=ticket.assigned_to_name,
        last_modified_by_name=ticket.last_modified_by_name,
        version=ticket.version,
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, lifecycle: TicketLifecycleDep) -> TicketResponse:
    try:
        ticket = await lifecycle.get_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)
