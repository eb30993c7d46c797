"""Builders for every card the bot sends, plus the display helpers they share."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from askexpert.knowledge.types import TaggedEntity
from askexpert.messaging.models import Card, CardAction, CardInput, OutboundMessage, UserIdentity
from askexpert.tickets.models import Ticket
from askexpert.tickets.state import TicketAction, TicketState

from .payloads import AskAnExpertPayload, FeedbackRating, ResponseCardPayload, ShareFeedbackPayload

KNOWLEDGE_BASE_ANSWER_MAX_DISPLAY_LENGTH = 500
TITLE_MAX_DISPLAY_LENGTH = 50
DESCRIPTION_MAX_DISPLAY_LENGTH = 500
_ELLIPSIS = "..."

# Text the submit buttons send back; the router dispatches on it.
ASK_AN_EXPERT = "ask an expert"
SHARE_FEEDBACK = "share feedback"
TAKE_A_TOUR = "take a tour"
TEAM_TOUR = "team tour"
ASK_AN_EXPERT_SUBMIT = "QuestionForExpert"
SHARE_FEEDBACK_SUBMIT = "ShareFeedback"

NO_MATCH_MESSAGE = "I couldn't find an answer to that. You can rephrase your question or ask an expert."
TAGS_MESSAGE = "Here are some articles that might help."
THANK_YOU_TEXT = "Thanks for your feedback!"
GENERIC_ERROR_TEXT = "Sorry, something went wrong while processing your message."
TICKET_CREATED_NOTIFICATION = "Your question has been sent to the experts. You'll hear back here."
REOPENED_USER_NOTIFICATION = "Your request has been reopened."
CLOSED_USER_NOTIFICATION = "Your request has been closed."
ASSIGNED_USER_NOTIFICATION = "An expert is working on your request."

_USER_STATUS = {
    TicketState.OPEN_UNASSIGNED: "Unassigned",
    TicketState.OPEN_ASSIGNED: "Assigned",
    TicketState.CLOSED: "Closed",
}


def truncate(text: str | None, max_length: int) -> str | None:
    if text is not None and len(text) > max_length:
        return text[:max_length] + _ELLIPSIS
    return text


def user_ticket_display_status(ticket: Ticket) -> str:
    return _USER_STATUS[ticket.state]


def team_ticket_display_status(ticket: Ticket) -> str:
    if ticket.state is TicketState.OPEN_ASSIGNED:
        return f"Assigned to {ticket.assigned_to_name}"
    return _USER_STATUS[ticket.state]


def team_status_notification(action: TicketAction, ticket: Ticket) -> str:
    """One-line note posted to the team thread after ``action``."""

    if action is TicketAction.REOPEN:
        return f"Reopened by {ticket.last_modified_by_name}"
    if action is TicketAction.CLOSE:
        return f"Closed by {ticket.last_modified_by_name}"
    return f"Assigned to {ticket.assigned_to_name}"


def user_status_notification(action: TicketAction) -> str:
    if action is TicketAction.REOPEN:
        return REOPENED_USER_NOTIFICATION
    if action is TicketAction.CLOSE:
        return CLOSED_USER_NOTIFICATION
    return ASSIGNED_USER_NOTIFICATION


def format_date_in_user_time_zone(value: datetime, utc_offset: timedelta | None = None) -> str:
    return (value + (utc_offset or timedelta(0))).strftime("%a, %B %d, %Y")


def format_date_for_adaptive_card(value: datetime) -> str:
    """Date macro that adaptive card clients render in the viewer's locale."""

    return "{{DATE(" + value.strftime("%Y-%m-%dT%H:%M:%SZ") + ", SHORT)}}"


def welcome_card(welcome_text: str | None) -> Card:
    return Card(
        template="welcome",
        text=welcome_text,
        actions=(
            CardAction(title="Take a tour", data={"msteams": {"type": "messageBack", "text": TAKE_A_TOUR}}),
        ),
    )


def team_welcome_card() -> Card:
    return Card(
        template="team-welcome",
        title="Hi, I'll post questions for the experts here.",
        text="Assign a question to yourself, close it when it's answered, or reopen it if needed.",
        actions=(
            CardAction(title="Take a tour", data={"msteams": {"type": "messageBack", "text": TEAM_TOUR}}),
        ),
    )


_RATING_TITLES = {
    FeedbackRating.HELPFUL: "Helpful",
    FeedbackRating.NEEDS_IMPROVEMENT: "Needs improvement",
    FeedbackRating.NOT_HELPFUL: "Not helpful",
}


def _form_context(data: ResponseCardPayload) -> dict[str, str | None]:
    return {
        "Question": data.user_question,
        "Answer shown": truncate(data.knowledge_base_answer, KNOWLEDGE_BASE_ANSWER_MAX_DISPLAY_LENGTH),
    }


def _submit_action(data: ResponseCardPayload, text: str) -> CardAction:
    # typed values come back from the inputs; the data only carries the context
    context = ResponseCardPayload(user_question=data.user_question, knowledge_base_answer=data.knowledge_base_answer)
    return CardAction(title="Submit", data={**context.to_card_data(), "msteams": {"type": "messageBack", "text": text}})


def ask_an_expert_card(payload: ResponseCardPayload | None = None, *, show_validation_errors: bool = False) -> Card:
    data = AskAnExpertPayload.model_validate(payload.to_card_data()) if payload is not None else AskAnExpertPayload()
    return Card(
        template="ask-an-expert",
        title="Ask an expert",
        text="Title is required" if show_validation_errors else None,
        fields=_form_context(data),
        inputs=(
            CardInput(id="Title", label="Title", value=data.title, placeholder="Type a short title for your question"),
            CardInput(
                id="Description",
                label="Description",
                value=data.description,
                multiline=True,
                placeholder="Add any details that help the experts answer",
            ),
        ),
        actions=(_submit_action(data, ASK_AN_EXPERT_SUBMIT),),
    )


def share_feedback_card(payload: ResponseCardPayload | None = None, *, show_validation_errors: bool = False) -> Card:
    data = ShareFeedbackPayload.model_validate(payload.to_card_data()) if payload is not None else ShareFeedbackPayload()
    return Card(
        template="share-feedback",
        title="Share feedback",
        text="Choose a rating" if show_validation_errors else None,
        fields=_form_context(data),
        inputs=(
            CardInput(
                id="Rating",
                label="How helpful was this?",
                value=data.rating if data.parsed_rating else None,
                choices=tuple((_RATING_TITLES[rating], rating.value) for rating in FeedbackRating),
            ),
            CardInput(id="Description", label="Anything else to tell us?", value=data.description, multiline=True),
        ),
        actions=(_submit_action(data, SHARE_FEEDBACK_SUBMIT),),
    )


def tour_carousel(app_base_url: str, *, team: bool = False) -> list[Card]:
    base = app_base_url.rstrip("/")
    if team:
        steps = (
            ("Questions from users", "Every question a user escalates shows up as a card in this channel.", "team-questions"),
            ("Assign and close", "Assign a ticket to yourself, close it when answered, reopen it if needed.", "team-assign"),
        )
    else:
        steps = (
            ("Ask a question", "Type a question and I'll search the knowledge base for an answer.", "user-question"),
            ("Ask an expert", "If the answer doesn't help, send your question to the experts.", "user-expert"),
            ("Share feedback", "Tell us how the app is working for you.", "user-feedback"),
        )
    return [
        Card(template="tour", title=title, text=text, image_url=f"{base}/content/{image}.png")
        for title, text, image in steps
    ]


def response_card(question: str, answer: str, user_question: str) -> Card:
    payload = ResponseCardPayload(user_question=user_question, knowledge_base_answer=answer)
    return Card(
        template="response",
        title=question,
        text=answer,
        actions=(
            CardAction(
                title="Ask an expert",
                data={**payload.to_card_data(), "msteams": {"type": "messageBack", "text": ASK_AN_EXPERT}},
            ),
            CardAction(
                title="Share feedback",
                data={**payload.to_card_data(), "msteams": {"type": "messageBack", "text": SHARE_FEEDBACK}},
            ),
        ),
    )


def tags_carousel(user_question: str, entities: Sequence[TaggedEntity], message: str = TAGS_MESSAGE) -> OutboundMessage:
    ask = CardAction(
        title="Ask an expert",
        data={
            **ResponseCardPayload(user_question=user_question).to_card_data(),
            "msteams": {"type": "messageBack", "text": ASK_AN_EXPERT},
        },
    )
    cards = [
        Card(
            template="suggested-link",
            title=entity.title,
            text=entity.description,
            image_url=entity.image_url,
            actions=((CardAction(title="Read more", url=entity.url),) if entity.url else ()) + (ask,),
        )
        for entity in entities
    ]
    return OutboundMessage.from_carousel(cards, text=message)


def unrecognized_input_card(user_question: str, message: str = NO_MATCH_MESSAGE) -> Card:
    payload = ResponseCardPayload(user_question=user_question)
    return Card(
        template="unrecognized-input",
        text=message,
        actions=(
            CardAction(
                title="Ask an expert",
                data={**payload.to_card_data(), "msteams": {"type": "messageBack", "text": ASK_AN_EXPERT}},
            ),
        ),
    )


def unrecognized_team_input_card() -> Card:
    return Card(
        template="unrecognized-team-input",
        text="I can only do a few things in a channel. Try 'team tour'.",
        actions=(
            CardAction(title="Take a tour", data={"msteams": {"type": "messageBack", "text": TEAM_TOUR}}),
        ),
    )


def team_ticket_card(ticket: Ticket) -> Card:
    """Card shown to the support team; updated in place on every transition."""

    fields = {
        "Status": team_ticket_display_status(ticket),
        "Title": truncate(ticket.title, TITLE_MAX_DISPLAY_LENGTH),
        "Description": truncate(ticket.description, DESCRIPTION_MAX_DISPLAY_LENGTH),
        "Asked by": ticket.requester_display_name,
        "Email": ticket.requester_principal_name,
        "Question": ticket.original_question,
        "Answer shown": truncate(ticket.knowledge_base_answer, KNOWLEDGE_BASE_ANSWER_MAX_DISPLAY_LENGTH),
        "Created": format_date_for_adaptive_card(ticket.created_at),
    }
    if ticket.closed_at is not None:
        fields["Closed"] = format_date_for_adaptive_card(ticket.closed_at)

    actions: list[CardAction] = []
    if ticket.state is TicketState.CLOSED:
        actions.append(_ticket_action(ticket, TicketAction.REOPEN, "Reopen"))
    else:
        if ticket.assigned_to_id is None:
            actions.append(_ticket_action(ticket, TicketAction.ASSIGN_TO_SELF, "Assign to me"))
        actions.append(_ticket_action(ticket, TicketAction.CLOSE, "Close"))
    if ticket.requester_principal_name:
        actions.append(
            CardAction(
                title=f"Chat with {ticket.requester_given_name or ticket.requester_display_name}",
                url=f"https://teams.microsoft.com/l/chat/0/0?users={ticket.requester_principal_name}",
            )
        )

    return Card(template="team-ticket", title=ticket.title, fields=fields, actions=tuple(actions))


def _ticket_action(ticket: Ticket, action: TicketAction, title: str) -> CardAction:
    return CardAction(title=title, data={"ticketId": ticket.id, "action": action.value})


def user_notification_card(ticket: Ticket, message: str) -> OutboundMessage:
    card = Card(
        template="user-notification",
        title=message,
        fields={
            "Status": user_ticket_display_status(ticket),
            "Title": truncate(ticket.title, TITLE_MAX_DISPLAY_LENGTH),
            "Description": truncate(ticket.description, DESCRIPTION_MAX_DISPLAY_LENGTH),
            "Created": format_date_for_adaptive_card(ticket.created_at),
        },
    )
    return OutboundMessage.from_card(card, summary=message)


def team_feedback_card(payload: ShareFeedbackPayload, user: UserIdentity) -> Card:
    return Card(
        template="team-feedback",
        title=f"Feedback from {user.name}",
        fields={
            "Rating": payload.rating,
            "Description": truncate(payload.description, DESCRIPTION_MAX_DISPLAY_LENGTH),
            "Question": payload.user_question,
            "Answer shown": truncate(payload.knowledge_base_answer, KNOWLEDGE_BASE_ANSWER_MAX_DISPLAY_LENGTH),
        },
    )
