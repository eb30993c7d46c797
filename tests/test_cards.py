from datetime import datetime, timedelta, timezone

from askexpert.knowledge.types import TaggedEntity
from askexpert.messaging.models import ConversationRef, OutboundMessage
from askexpert.metrics import MetricsRegistry, record_route, register_default_metrics
from askexpert.response import cards
from askexpert.response.payloads import AskAnExpertPayload, ShareFeedbackPayload
from askexpert.tickets.models import Ticket
from askexpert.tickets.state import TicketAction, TicketStatus

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _ticket(**overrides) -> Ticket:
    values = dict(
        id="t-1",
        status=TicketStatus.OPEN,
        created_at=NOW,
        title="T" * 60,
        description="D" * 600,
        original_question="why does vpn drop",
        knowledge_base_answer="A" * 501,
        requester_id="user-1",
        requester_display_name="Ada Lovelace",
        requester_principal_name="ada@example.com",
        requester_given_name="Ada",
        requester_conversation=ConversationRef(id="a:private-1"),
        last_modified_by_name="Grace Hopper",
        last_modified_by_id="expert-1",
    )
    values.update(overrides)
    return Ticket(**values)


def test_truncate_appends_ellipsis_only_when_needed():
    assert cards.truncate("short", 10) == "short"
    assert cards.truncate("x" * 11, 10) == "x" * 10 + "..."
    assert cards.truncate(None, 10) is None


def test_team_card_truncates_and_offers_open_actions():
    card = cards.team_ticket_card(_ticket())

    assert card.fields["Title"] == "T" * 50 + "..."
    assert card.fields["Description"] == "D" * 500 + "..."
    assert card.fields["Answer shown"] == "A" * 500 + "..."
    assert card.fields["Status"] == "Unassigned"
    assert [action.title for action in card.actions] == ["Assign to me", "Close", "Chat with Ada"]
    assert card.actions[0].data == {"ticketId": "t-1", "action": "AssignToSelf"}


def test_team_card_for_assigned_and_closed_tickets():
    assigned = _ticket(assigned_at=NOW, assigned_to_name="Grace Hopper", assigned_to_id="expert-1")
    closed = _ticket(status=TicketStatus.CLOSED, closed_at=NOW, requester_principal_name=None)

    assigned_card = cards.team_ticket_card(assigned)
    closed_card = cards.team_ticket_card(closed)

    assert assigned_card.fields["Status"] == "Assigned to Grace Hopper"
    assert [action.title for action in assigned_card.actions][:1] == ["Close"]
    assert closed_card.fields["Status"] == "Closed"
    assert "Closed" in closed_card.fields
    assert [action.data["action"] for action in closed_card.actions] == ["ReopenTicket"]


def test_status_notifications():
    ticket = _ticket(assigned_at=NOW, assigned_to_name="Grace Hopper", assigned_to_id="expert-1")

    assert cards.team_status_notification(TicketAction.REOPEN, ticket) == "Reopened by Grace Hopper"
    assert cards.team_status_notification(TicketAction.CLOSE, ticket) == "Closed by Grace Hopper"
    assert cards.team_status_notification(TicketAction.ASSIGN_TO_SELF, ticket) == "Assigned to Grace Hopper"
    assert cards.user_status_notification(TicketAction.CLOSE) == cards.CLOSED_USER_NOTIFICATION
    assert cards.user_ticket_display_status(ticket) == "Assigned"


def test_user_notification_uses_message_as_summary():
    message = cards.user_notification_card(_ticket(), cards.TICKET_CREATED_NOTIFICATION)

    activity = message.to_activity()
    assert activity["summary"] == cards.TICKET_CREATED_NOTIFICATION
    assert activity["attachmentLayout"] == "list"
    assert activity["attachments"][0]["content"]["metadata"] == {"template": "user-notification"}


def test_date_formatting():
    assert cards.format_date_for_adaptive_card(NOW) == "{{DATE(2024-05-01T12:00:00Z, SHORT)}}"
    assert cards.format_date_in_user_time_zone(NOW, timedelta(hours=14)) == "Thu, May 02, 2024"


def test_text_message_activity_has_no_attachments():
    assert OutboundMessage.from_text("hi").to_activity() == {"type": "message", "text": "hi"}


def test_route_counter_registry():
    registry = register_default_metrics(MetricsRegistry())

    record_route("no_match", registry)
    record_route("no_match", registry)

    assert registry.snapshot()["messages_routed_total"] == {"no_match": 2.0}
    assert registry.snapshot()["lookup_failures_total"] == {}


def _body_types(card) -> list[str]:
    return [element["type"] for element in card.to_attachment()["content"]["body"]]


def test_ask_an_expert_form_renders_prefilled_text_inputs():
    payload = AskAnExpertPayload(user_question="why does vpn drop", knowledge_base_answer="Restart", title="VPN")
    card = cards.ask_an_expert_card(payload)

    body = card.to_attachment()["content"]["body"]
    inputs = {element["id"]: element for element in body if element["type"].startswith("Input.")}
    assert set(inputs) == {"Title", "Description"}
    assert inputs["Title"]["type"] == "Input.Text"
    assert inputs["Title"]["value"] == "VPN"
    assert inputs["Description"]["isMultiline"] is True
    assert "value" not in inputs["Description"]
    submit = card.to_attachment()["content"]["actions"][0]
    assert submit["data"]["UserQuestion"] == "why does vpn drop"
    assert submit["data"]["msteams"]["text"] == cards.ASK_AN_EXPERT_SUBMIT


def test_share_feedback_form_offers_every_rating():
    card = cards.share_feedback_card(ShareFeedbackPayload(rating="Great", description="ok"), show_validation_errors=True)

    assert "Input.ChoiceSet" in _body_types(card)
    assert "Input.Text" in _body_types(card)
    (rating,) = [element for element in card.to_attachment()["content"]["body"] if element.get("id") == "Rating"]
    assert [choice["value"] for choice in rating["choices"]] == ["Helpful", "NeedsImprovement", "NotHelpful"]
    assert "value" not in rating
    assert card.input_values()["Description"] == "ok"


def test_suggested_links_offer_ask_an_expert_with_question():
    entity = TaggedEntity(id="1", title="Password reset", tags="password", url="https://help.test/reset")

    message = cards.tags_carousel("how do i reset password", [entity])

    (card,) = message.cards
    read_more, ask = card.actions
    assert read_more.url == "https://help.test/reset"
    assert ask.data["UserQuestion"] == "how do i reset password"
    assert ask.data["msteams"]["text"] == cards.ASK_AN_EXPERT
