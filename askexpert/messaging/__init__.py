"""Conversation addressing, outbound message content and delivery."""

from .models import (
    Card,
    CardAction,
    ConversationRef,
    ConversationScope,
    DeliveryHandle,
    InboundMessage,
    MembersAdded,
    OutboundMessage,
    UserIdentity,
)
from .notifier import BotConnectorCredentials, BotConnectorNotifier, Notifier, NotifierError

__all__ = [
    "BotConnectorCredentials",
    "BotConnectorNotifier",
    "Card",
    "CardAction",
    "ConversationRef",
    "ConversationScope",
    "DeliveryHandle",
    "InboundMessage",
    "MembersAdded",
    "Notifier",
    "NotifierError",
    "OutboundMessage",
    "UserIdentity",
]
