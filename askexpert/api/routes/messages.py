from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from askexpert.api.dependencies import get_message_router
from askexpert.messaging.models import (
    ConversationRef,
    ConversationScope,
    InboundMessage,
    MembersAdded,
    UserIdentity,
)
from askexpert.routing.router import MessageRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["messages"])


class _ActivityPart(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChannelAccountModel(_ActivityPart):
    id: str = ""
    name: str = ""
    aad_object_id: str | None = Field(default=None, alias="aadObjectId")
    user_principal_name: str | None = Field(default=None, alias="userPrincipalName")
    given_name: str | None = Field(default=None, alias="givenName")

    def to_identity(self) -> UserIdentity:
        return UserIdentity(
            id=self.aad_object_id or self.id,
            name=self.name,
            principal_name=self.user_principal_name,
            given_name=self.given_name,
        )


class ConversationAccountModel(_ActivityPart):
    id: str
    conversation_type: str | None = Field(default=None, alias="conversationType")
    tenant_id: str | None = Field(default=None, alias="tenantId")


class ActivityModel(_ActivityPart):
    type: str
    id: str | None = None
    text: str | None = None
    value: dict[str, Any] | None = None
    reply_to_id: str | None = Field(default=None, alias="replyToId")
    service_url: str | None = Field(default=None, alias="serviceUrl")
    sender: ChannelAccountModel = Field(default_factory=ChannelAccountModel, alias="from")
    recipient: ChannelAccountModel = Field(default_factory=ChannelAccountModel)
    conversation: ConversationAccountModel
    members_added: list[ChannelAccountModel] = Field(default_factory=list, alias="membersAdded")
    channel_data: dict[str, Any] = Field(default_factory=dict, alias="channelData")

    def scope(self) -> ConversationScope | None:
        try:
            return ConversationScope(self.conversation.conversation_type)
        except ValueError:
            return None

    def tenant_id(self) -> str | None:
        tenant = self.channel_data.get("tenant") or {}
        return self.conversation.tenant_id or tenant.get("id")

    def team_id(self) -> str | None:
        team = self.channel_data.get("team") or {}
        return team.get("id")

    def conversation_ref(self) -> ConversationRef:
        return ConversationRef(id=self.conversation.id, service_url=self.service_url, tenant_id=self.tenant_id())


class ActivityAck(BaseModel):
    status: str = "accepted"


MessageRouterDep = Annotated[MessageRouter, Depends(get_message_router)]


@router.post("/messages", response_model=ActivityAck, summary="Bot Framework activity endpoint")
async def receive_activity(activity: ActivityModel, message_router: MessageRouterDep) -> ActivityAck:
    scope = activity.scope()
    if activity.type not in ("message", "conversationUpdate"):
        logger.info("Ignoring %s activity", activity.type)
        return ActivityAck(status="ignored")
    if scope is None:
        logger.warning("Received unexpected conversationType %s", activity.conversation.conversation_type)
        return ActivityAck(status="ignored")

    if activity.type == "message":
        await message_router.handle_message(
            InboundMessage(
                scope=scope,
                conversation=activity.conversation_ref(),
                sender=activity.sender.to_identity(),
                text=activity.text,
                value=activity.value,
                reply_to_id=activity.reply_to_id,
            )
        )
    elif activity.members_added:
        await message_router.handle_members_added(
            MembersAdded(
                scope=scope,
                conversation=activity.conversation_ref(),
                bot_id=activity.recipient.id,
                member_ids=[member.id for member in activity.members_added],
                team_id=activity.team_id(),
            )
        )
    else:
        logger.info("Ignoring conversationUpdate that was not a membersAdded event")
    return ActivityAck()
