from __future__ import annotations

from fastapi import HTTPException, Request

from askexpert.routing.router import MessageRouter
from askexpert.tickets.lifecycle import TicketLifecycle


async def get_message_router(request: Request) -> MessageRouter:
    router = getattr(request.app.state, "message_router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Message router is not configured")
    return router


async def get_ticket_lifecycle(request: Request) -> TicketLifecycle:
    lifecycle = getattr(request.app.state, "ticket_lifecycle", None)
    if lifecycle is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return lifecycle
