from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"


class ConversationScope(str, Enum):
    """Where an inbound message was posted."""

    PRIVATE = "personal"
    GROUP = "channel"


@dataclass(frozen=True, slots=True)
class ConversationRef:
    """Return address of a conversation."""

    id: str
    service_url: str | None = None
    tenant_id: str | None = None


@dataclass(frozen=True, slots=True)
class DeliveryHandle:
    """Identifies one delivered message so it can be edited later."""

    conversation_id: str
    message_id: str
    service_url: str | None = None

    @property
    def conversation(self) -> ConversationRef:
        return ConversationRef(id=self.conversation_id, service_url=self.service_url)


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """A chat participant as seen by the bot."""

    id: str
    name: str
    principal_name: str | None = None
    given_name: str | None = None


@dataclass(frozen=True, slots=True)
class CardAction:
    """Submit or open-url button on a card."""

    title: str
    data: Mapping[str, Any] | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.url is not None:
            return {"type": "Action.OpenUrl", "title": self.title, "url": self.url}
        return {"type": "Action.Submit", "title": self.title, "data": dict(self.data or {})}


@dataclass(frozen=True, slots=True)
class CardInput:
    """Editable form element whose value is submitted under ``id``.

    An input with ``choices`` renders as a choice set, anything else as a
    text box.
    """

    id: str
    label: str
    value: str | None = None
    choices: Sequence[tuple[str, str]] = ()
    multiline: bool = False
    placeholder: str | None = None

    def to_elements(self) -> list[dict[str, Any]]:
        element: dict[str, Any]
        if self.choices:
            element = {
                "type": "Input.ChoiceSet",
                "id": self.id,
                "style": "expanded",
                "choices": [{"title": title, "value": value} for title, value in self.choices],
            }
        else:
            element = {"type": "Input.Text", "id": self.id, "isMultiline": self.multiline}
            if self.placeholder:
                element["placeholder"] = self.placeholder
        if self.value:
            element["value"] = self.value
        return [{"type": "TextBlock", "text": self.label, "wrap": True}, element]


@dataclass(frozen=True, slots=True)
class Card:
    """Content of one rendered card, kept independent of any card toolkit.

    ``template`` names the card kind, ``fields`` carries the read-only values
    the card shows, ``inputs`` the editable form elements and ``actions`` the
    buttons.
    """

    template: str
    title: str | None = None
    text: str | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)
    actions: Sequence[CardAction] = ()
    image_url: str | None = None
    inputs: Sequence[CardInput] = ()

    def input_values(self) -> dict[str, str | None]:
        return {card_input.id: card_input.value for card_input in self.inputs}

    def to_attachment(self) -> dict[str, Any]:
        body: list[dict[str, Any]] = []
        if self.image_url:
            body.append({"type": "Image", "url": self.image_url, "size": "Stretch"})
        if self.title:
            body.append({"type": "TextBlock", "text": self.title, "weight": "Bolder", "wrap": True})
        if self.text:
            body.append({"type": "TextBlock", "text": self.text, "wrap": True})
        facts = [
            {"title": name, "value": str(value)}
            for name, value in self.fields.items()
            if value is not None and value != ""
        ]
        if facts:
            body.append({"type": "FactSet", "facts": facts})
        for card_input in self.inputs:
            body.extend(card_input.to_elements())
        return {
            "contentType": ADAPTIVE_CARD_CONTENT_TYPE,
            "content": {
                "type": "AdaptiveCard",
                "version": "1.0",
                "body": body,
                "actions": [action.to_dict() for action in self.actions],
                "metadata": {"template": self.template},
            },
        }


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """A single outbound message: plain text, one card, or a carousel of cards."""

    text: str | None = None
    cards: Sequence[Card] = ()
    carousel: bool = False
    summary: str | None = None

    @classmethod
    def from_text(cls, text: str) -> "OutboundMessage":
        return cls(text=text)

    @classmethod
    def from_card(cls, card: Card, *, summary: str | None = None) -> "OutboundMessage":
        return cls(cards=(card,), summary=summary)

    @classmethod
    def from_carousel(cls, cards: Sequence[Card], *, text: str | None = None) -> "OutboundMessage":
        return cls(text=text, cards=tuple(cards), carousel=True)

    def to_activity(self) -> dict[str, Any]:
        activity: dict[str, Any] = {"type": "message"}
        if self.text is not None:
            activity["text"] = self.text
        if self.cards:
            activity["attachments"] = [card.to_attachment() for card in self.cards]
            activity["attachmentLayout"] = "carousel" if self.carousel else "list"
        if self.summary is not None:
            activity["summary"] = self.summary
        return activity


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """One inbound chat message together with its conversational context.

    ``value`` holds the structured payload of a form submission and
    ``reply_to_id`` the id of the message that carried the submitted form.
    """

    scope: ConversationScope
    conversation: ConversationRef
    sender: UserIdentity
    text: str | None = None
    value: Mapping[str, Any] | None = None
    reply_to_id: str | None = None

    @property
    def is_submission(self) -> bool:
        return bool(self.reply_to_id) and bool(self.value)

    @property
    def form_handle(self) -> DeliveryHandle | None:
        if not self.reply_to_id:
            return None
        return DeliveryHandle(
            conversation_id=self.conversation.id,
            message_id=self.reply_to_id,
            service_url=self.conversation.service_url,
        )


@dataclass(frozen=True, slots=True)
class MembersAdded:
    """Conversation update announcing new members."""

    scope: ConversationScope
    conversation: ConversationRef
    bot_id: str
    member_ids: Sequence[str]
    team_id: str | None = None

    @property
    def includes_bot(self) -> bool:
        return self.bot_id in self.member_ids
