from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from opentelemetry import trace

from askexpert import metrics
from askexpert.configuration.store import ConfigurationKey, ConfigurationStore
from askexpert.messaging.models import ConversationRef, OutboundMessage, UserIdentity
from askexpert.messaging.notifier import Notifier
from askexpert.response import cards
from askexpert.response.payloads import AskAnExpertPayload

from .models import Ticket
from .repository import TicketStore
from .state import TicketAction, TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TicketError(RuntimeError):
    """Base error for ticket lifecycle issues."""


class TicketNotFoundError(TicketError):
    """Raised when a ticket could not be located."""


class TicketPersistenceError(TicketError):
    """Raised when the ticket store did not accept a write."""


class ConcurrentTicketUpdateError(TicketPersistenceError):
    """Raised when the stored ticket changed since it was read."""


class ConfigurationMissingError(TicketError):
    """Raised when a runtime value needed for escalation is not configured."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketLifecycle:
    """Create tickets and move them between states, notifying both sides.

    Every successful transition is persisted before anything is sent. The
    team card is always edited in place through the stored team thread and
    the requester is notified in their original conversation.
    """

    def __init__(
        self,
        store: TicketStore,
        notifier: Notifier,
        configuration: ConfigurationStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._configuration = configuration
        self._clock = clock

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._store.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def create_ticket(
        self,
        submission: AskAnExpertPayload,
        *,
        requester: UserIdentity,
        conversation: ConversationRef,
        actor: UserIdentity,
    ) -> Ticket:
        if not submission.has_title:
            raise ValueError("A ticket needs a title")

        team_id = await self._configuration.get(ConfigurationKey.TEAM_ID)
        if not team_id:
            raise ConfigurationMissingError("Team id is not configured")

        with tracer.start_as_current_span("ticket.create"):
            ticket = Ticket(
                id=str(uuid.uuid4()),
                status=TicketStatus.OPEN,
                created_at=self._clock(),
                title=submission.title.strip(),
                description=submission.description,
                original_question=submission.user_question,
                knowledge_base_answer=submission.knowledge_base_answer,
                requester_id=requester.id,
                requester_display_name=requester.name,
                requester_principal_name=requester.principal_name,
                requester_given_name=requester.given_name,
                requester_conversation=conversation,
                last_modified_by_name=actor.name,
                last_modified_by_id=actor.id,
            )
            TicketStateMachine.check_invariants(ticket)
            await self._persist(ticket)

            handle = await self._notifier.send_to_team(
                team_id,
                OutboundMessage.from_card(cards.team_ticket_card(ticket)),
                service_url=conversation.service_url,
            )
            ticket = replace(ticket, team_thread=handle, version=ticket.version + 1)
            await self._persist(ticket)
            logger.info("Ticket %s created and posted to team %s", ticket.id, team_id)

            await self._notifier.send_to_conversation(
                conversation,
                cards.user_notification_card(ticket, cards.TICKET_CREATED_NOTIFICATION),
            )
            metrics.record_transition("Create")
            return ticket

    async def apply_action(
        self,
        *,
        ticket_id: str,
        action: str | None,
        actor: UserIdentity,
        reply_to: ConversationRef,
    ) -> Ticket | None:
        """Apply a team member's card action to a ticket.

        A missing ticket or an unknown action is answered on ``reply_to`` and
        leaves the store untouched; ``None`` is returned in that case.
        """

        async with self._store.lock(ticket_id):
            ticket = await self._store.get(ticket_id)
            if ticket is None:
                logger.info("Ticket %s was not found in the data store", ticket_id)
                await self._notifier.send_to_conversation(
                    reply_to, OutboundMessage.from_text(f"Ticket {ticket_id} was not found in the data store")
                )
                return None

            parsed = TicketAction.parse(action)
            if parsed is None:
                logger.warning("Unknown status command %s for ticket %s", action, ticket_id)
                await self._notifier.send_to_conversation(
                    reply_to, OutboundMessage.from_text(f"Unknown status command {action}")
                )
                return None

            with tracer.start_as_current_span("ticket.transition") as span:
                span.set_attribute("ticket.id", ticket_id)
                span.set_attribute("ticket.action", parsed.value)
                updated = TicketStateMachine.apply(ticket, parsed, actor=actor, now=self._clock())
                await self._persist(updated)
                logger.info(
                    "Ticket %s updated to %s (assignee %s) by %s",
                    updated.id,
                    updated.state.value,
                    updated.assigned_to_id,
                    actor.id,
                )
                metrics.record_transition(parsed.value)
                # card edits of one ticket must land in transition order
                await self._notify_transition(updated, parsed, reply_to)
        return updated

    async def _notify_transition(self, ticket: Ticket, action: TicketAction, reply_to: ConversationRef) -> None:
        team_conversation = reply_to
        if ticket.team_thread is not None:
            updated = await self._notifier.update_message(
                ticket.team_thread, OutboundMessage.from_card(cards.team_ticket_card(ticket))
            )
            if not updated:
                logger.warning("Team card for ticket %s could not be updated in place", ticket.id)
            team_conversation = ticket.team_thread.conversation
        else:
            logger.warning("Ticket %s has no team thread; replying where the action came from", ticket.id)

        await self._notifier.send_to_conversation(
            team_conversation, OutboundMessage.from_text(cards.team_status_notification(action, ticket))
        )
        await self._notifier.send_to_conversation(
            ticket.requester_conversation,
            cards.user_notification_card(ticket, cards.user_status_notification(action)),
        )

    async def _persist(self, ticket: Ticket) -> None:
        if await self._store.upsert(ticket):
            return
        if ticket.version > 1:
            raise ConcurrentTicketUpdateError(
                f"Ticket {ticket.id} changed while version {ticket.version - 1} was being updated"
            )
        raise TicketPersistenceError(f"Ticket {ticket.id} could not be saved")
