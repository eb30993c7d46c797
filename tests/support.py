from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from askexpert.messaging.models import (
    ConversationRef,
    ConversationScope,
    DeliveryHandle,
    InboundMessage,
    OutboundMessage,
    UserIdentity,
)

TEAM_ID = "19:team-channel"
REQUESTER = UserIdentity(id="user-1", name="Ada Lovelace", principal_name="ada@example.com", given_name="Ada")
EXPERT = UserIdentity(id="expert-1", name="Grace Hopper")
PRIVATE_CONVERSATION = ConversationRef(id="a:private-1", service_url="https://service.test/", tenant_id="tenant-1")
TEAM_CONVERSATION = ConversationRef(id="19:team-channel;messageid=1", service_url="https://service.test/")


class RecordingNotifier:
    """Notifier that remembers everything it was asked to deliver."""

    def __init__(self, *, member: UserIdentity | None = None, update_result: bool = True) -> None:
        self.sent: list[tuple[ConversationRef, OutboundMessage]] = []
        self.team_sent: list[tuple[str, OutboundMessage]] = []
        self.updated: list[tuple[DeliveryHandle, OutboundMessage]] = []
        self.team_service_urls: list[str | None] = []
        self.member = member
        self.update_result = update_result
        self._message_count = 0

    def _next_id(self) -> str:
        self._message_count += 1
        return f"msg-{self._message_count}"

    async def send_to_conversation(self, conversation: ConversationRef, message: OutboundMessage) -> DeliveryHandle:
        self.sent.append((conversation, message))
        return DeliveryHandle(conversation.id, self._next_id(), conversation.service_url)

    async def send_to_team(
        self, team_id: str, message: OutboundMessage, *, service_url: str | None = None
    ) -> DeliveryHandle:
        self.team_sent.append((team_id, message))
        self.team_service_urls.append(service_url)
        return DeliveryHandle(f"{team_id};messageid=thread", self._next_id(), service_url or "https://service.test/")

    async def update_message(self, handle: DeliveryHandle, message: OutboundMessage) -> bool:
        self.updated.append((handle, message))
        return self.update_result

    async def get_conversation_member(self, conversation: ConversationRef) -> UserIdentity | None:
        return self.member


class FixedClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(minutes=1)
        return current


def card_templates(message: OutboundMessage) -> list[str]:
    return [card.template for card in message.cards]


def private_message(
    text: str | None = None,
    *,
    value: Mapping[str, Any] | None = None,
    reply_to_id: str | None = None,
    sender: UserIdentity = REQUESTER,
) -> InboundMessage:
    return InboundMessage(
        scope=ConversationScope.PRIVATE,
        conversation=PRIVATE_CONVERSATION,
        sender=sender,
        text=text,
        value=value,
        reply_to_id=reply_to_id,
    )


def team_message(
    text: str | None = None,
    *,
    value: Mapping[str, Any] | None = None,
    reply_to_id: str | None = None,
    sender: UserIdentity = EXPERT,
) -> InboundMessage:
    return InboundMessage(
        scope=ConversationScope.GROUP,
        conversation=TEAM_CONVERSATION,
        sender=sender,
        text=text,
        value=value,
        reply_to_id=reply_to_id,
    )
