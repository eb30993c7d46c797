"""Structured values submitted back from rendered forms."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class FeedbackRating(str, Enum):
    HELPFUL = "Helpful"
    NEEDS_IMPROVEMENT = "NeedsImprovement"
    NOT_HELPFUL = "NotHelpful"


class _SubmissionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_card_data(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ResponseCardPayload(_SubmissionModel):
    """Context carried by an answer card so follow-up forms can be pre-filled."""

    user_question: str | None = Field(default=None, alias="UserQuestion")
    knowledge_base_answer: str | None = Field(default=None, alias="KnowledgeBaseAnswer")


class AskAnExpertPayload(ResponseCardPayload):
    title: str | None = Field(default=None, alias="Title")
    description: str | None = Field(default=None, alias="Description")

    @property
    def has_title(self) -> bool:
        return bool(self.title and self.title.strip())


class ShareFeedbackPayload(ResponseCardPayload):
    rating: str | None = Field(default=None, alias="Rating")
    description: str | None = Field(default=None, alias="Description")

    @property
    def parsed_rating(self) -> FeedbackRating | None:
        try:
            return FeedbackRating(self.rating) if self.rating else None
        except ValueError:
            return None


class ChangeTicketStatusPayload(_SubmissionModel):
    ticket_id: str | None = Field(default=None, alias="ticketId")
    action: str | None = Field(default=None, alias="action")


def parse_lenient(model: type[_SubmissionModel], value: Mapping[str, Any] | None) -> _SubmissionModel:
    """Validate ``value`` and fall back to an empty model when it does not fit."""

    try:
        return model.model_validate(dict(value or {}))
    except ValidationError:
        return model()
