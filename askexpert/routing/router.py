from __future__ import annotations

import logging
from typing import Sequence

from opentelemetry import trace
from pydantic import ValidationError

from askexpert import metrics
from askexpert.configuration.store import ConfigurationKey, ConfigurationStore
from askexpert.core.logging import bind_conversation
from askexpert.messaging.models import (
    Card,
    ConversationScope,
    InboundMessage,
    MembersAdded,
    OutboundMessage,
    UserIdentity,
)
from askexpert.messaging.notifier import Notifier, NotifierError
from askexpert.response import cards
from askexpert.response.payloads import (
    AskAnExpertPayload,
    ChangeTicketStatusPayload,
    ResponseCardPayload,
    ShareFeedbackPayload,
    parse_lenient,
)
from askexpert.tickets.lifecycle import TicketLifecycle

from .commands import PrivateCommand, SubmitAction, TeamCommand
from .strategies import LookupStrategy, first_match

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class MessageRouter:
    """Decide and send exactly one response for each inbound message.

    Private chats understand a few command keywords and otherwise fall back
    to content search through ``lookups``; team channels understand only the
    team commands and ticket card actions.
    """

    def __init__(
        self,
        *,
        notifier: Notifier,
        lifecycle: TicketLifecycle,
        configuration: ConfigurationStore,
        lookups: Sequence[LookupStrategy] = (),
        app_base_url: str = "",
        expected_tenant_id: str | None = None,
    ) -> None:
        self._notifier = notifier
        self._lifecycle = lifecycle
        self._configuration = configuration
        self._lookups = tuple(lookups)
        self._app_base_url = app_base_url
        self._expected_tenant_id = expected_tenant_id

    def is_expected_tenant(self, tenant_id: str | None) -> bool:
        return not self._expected_tenant_id or tenant_id == self._expected_tenant_id

    async def handle_message(self, message: InboundMessage) -> None:
        if not self.is_expected_tenant(message.conversation.tenant_id):
            logger.warning("Ignoring message from unexpected tenant %s", message.conversation.tenant_id)
            return

        logger.info(
            "Received message from %s in %s conversation %s (reply to %s)",
            message.sender.id,
            message.scope.value,
            message.conversation.id,
            message.reply_to_id,
        )
        with bind_conversation(message.conversation.id), tracer.start_as_current_span("message.route") as span:
            span.set_attribute("conversation.scope", message.scope.value)
            try:
                if message.scope is ConversationScope.PRIVATE:
                    if message.is_submission:
                        await self._handle_private_submission(message)
                    else:
                        await self._handle_private_text(message)
                elif message.is_submission:
                    await self._handle_team_submission(message)
                else:
                    await self._handle_team_text(message)
            except Exception:
                logger.exception("Error processing message in conversation %s", message.conversation.id)
                try:
                    await self._reply(message, OutboundMessage.from_text(cards.GENERIC_ERROR_TEXT), route="error")
                except NotifierError:
                    logger.warning("Could not send the error reply to %s", message.conversation.id, exc_info=True)
                raise

    async def handle_members_added(self, update: MembersAdded) -> None:
        """Welcome users and teams when the bot is added to their conversation."""

        if not self.is_expected_tenant(update.conversation.tenant_id):
            logger.warning("Ignoring conversation update from unexpected tenant %s", update.conversation.tenant_id)
            return
        if not update.includes_bot:
            logger.info("Ignoring members added to %s that do not include the bot", update.conversation.id)
            return

        try:
            if update.scope is ConversationScope.PRIVATE:
                logger.info("Bot added to 1:1 chat %s", update.conversation.id)
                welcome_text = await self._configuration.get(ConfigurationKey.WELCOME_TEXT)
                await self._notifier.send_to_conversation(
                    update.conversation, OutboundMessage.from_card(cards.welcome_card(welcome_text))
                )
            elif update.team_id:
                logger.info("Bot added to team %s", update.team_id)
                await self._notifier.send_to_team(
                    update.team_id,
                    OutboundMessage.from_card(cards.team_welcome_card()),
                    service_url=update.conversation.service_url,
                )
            else:
                logger.warning("Bot added to channel %s without team details", update.conversation.id)
        except Exception:
            logger.exception("Error sending welcome to conversation %s", update.conversation.id)

    async def _handle_private_text(self, message: InboundMessage) -> None:
        text = (message.text or "").strip().lower()
        command = PrivateCommand.parse(text)

        if command is PrivateCommand.ASK_AN_EXPERT:
            await self._reply(message, OutboundMessage.from_card(cards.ask_an_expert_card()), route="ask_an_expert")
        elif command is PrivateCommand.SHARE_FEEDBACK:
            await self._reply(message, OutboundMessage.from_card(cards.share_feedback_card()), route="share_feedback")
        elif command is PrivateCommand.TAKE_A_TOUR:
            await self._reply(
                message, OutboundMessage.from_carousel(cards.tour_carousel(self._app_base_url)), route="tour"
            )
        else:
            result = await first_match(self._lookups, text)
            if result is not None:
                await self._reply(message, result.message, route=result.strategy)
            else:
                await self._reply(
                    message, OutboundMessage.from_card(cards.unrecognized_input_card(text)), route="no_match"
                )

    async def _handle_team_text(self, message: InboundMessage) -> None:
        command = TeamCommand.parse(message.text)
        if command is TeamCommand.TEAM_TOUR:
            await self._reply(
                message, OutboundMessage.from_carousel(cards.tour_carousel(self._app_base_url, team=True)), route="team_tour"
            )
        else:
            await self._reply(
                message, OutboundMessage.from_card(cards.unrecognized_team_input_card()), route="team_unrecognized"
            )

    async def _handle_private_submission(self, message: InboundMessage) -> None:
        action = SubmitAction.parse(message.text)

        if action is SubmitAction.ASK_AN_EXPERT:
            payload = parse_lenient(ResponseCardPayload, message.value)
            await self._reply(message, OutboundMessage.from_card(cards.ask_an_expert_card(payload)), route="ask_an_expert")
        elif action is SubmitAction.SHARE_FEEDBACK:
            payload = parse_lenient(ResponseCardPayload, message.value)
            await self._reply(message, OutboundMessage.from_card(cards.share_feedback_card(payload)), route="share_feedback")
        elif action is SubmitAction.ASK_AN_EXPERT_SUBMIT:
            await self._submit_question(message)
        elif action is SubmitAction.SHARE_FEEDBACK_SUBMIT:
            await self._submit_feedback(message)
        else:
            logger.warning("Unexpected text in submit payload: %s", message.text)
            await self._reply(
                message, OutboundMessage.from_text(f"Unknown submit action {message.text}"), route="unknown_submit"
            )

    async def _submit_question(self, message: InboundMessage) -> None:
        try:
            submission = AskAnExpertPayload.model_validate(dict(message.value or {}))
        except ValidationError:
            submission = None
        if submission is None or not submission.has_title:
            logger.info("Question for expert is missing a title, showing the form again")
            await self._edit_form(
                message, cards.ask_an_expert_card(submission, show_validation_errors=True), route="ask_an_expert_invalid"
            )
            return

        requester = await self._requester_details(message)
        await self._lifecycle.create_ticket(
            submission,
            requester=requester,
            conversation=message.conversation,
            actor=message.sender,
        )
        metrics.record_route("ticket_created")

    async def _submit_feedback(self, message: InboundMessage) -> None:
        try:
            feedback = ShareFeedbackPayload.model_validate(dict(message.value or {}))
        except ValidationError:
            feedback = None
        if feedback is None or feedback.parsed_rating is None:
            logger.info("Feedback has no valid rating, showing the form again")
            await self._edit_form(
                message, cards.share_feedback_card(feedback, show_validation_errors=True), route="share_feedback_invalid"
            )
            return

        team_id = await self._configuration.get(ConfigurationKey.TEAM_ID)
        if team_id:
            user = await self._requester_details(message)
            await self._notifier.send_to_team(
                team_id,
                OutboundMessage.from_card(cards.team_feedback_card(feedback, user)),
                service_url=message.conversation.service_url,
            )
        else:
            logger.warning("Team id is not configured; feedback from %s was not forwarded", message.sender.id)
        await self._reply(message, OutboundMessage.from_text(cards.THANK_YOU_TEXT), route="feedback_received")

    async def _handle_team_submission(self, message: InboundMessage) -> None:
        payload = parse_lenient(ChangeTicketStatusPayload, message.value)
        logger.info("Received submit: ticketId=%s action=%s", payload.ticket_id, payload.action)
        if not payload.ticket_id:
            await self._reply(message, OutboundMessage.from_text("The submission did not name a ticket"), route="team_invalid")
            return
        await self._lifecycle.apply_action(
            ticket_id=payload.ticket_id,
            action=payload.action,
            actor=message.sender,
            reply_to=message.conversation,
        )
        metrics.record_route("ticket_action")

    async def _requester_details(self, message: InboundMessage) -> UserIdentity:
        try:
            member = await self._notifier.get_conversation_member(message.conversation)
        except NotifierError:
            logger.warning("Could not read the roster of %s", message.conversation.id, exc_info=True)
            member = None
        if member is None:
            return message.sender
        return UserIdentity(
            id=message.sender.id,
            name=member.name or message.sender.name,
            principal_name=member.principal_name or message.sender.principal_name,
            given_name=member.given_name or message.sender.given_name,
        )

    async def _edit_form(self, message: InboundMessage, card: Card, *, route: str) -> None:
        handle = message.form_handle
        if handle is None:
            await self._reply(message, OutboundMessage.from_card(card), route=route)
            return
        await self._notifier.update_message(handle, OutboundMessage.from_card(card))
        metrics.record_route(route)

    async def _reply(self, message: InboundMessage, content: OutboundMessage, *, route: str) -> None:
        logger.debug("Replying to %s via route %s", message.conversation.id, route)
        await self._notifier.send_to_conversation(message.conversation, content)
        metrics.record_route(route)
