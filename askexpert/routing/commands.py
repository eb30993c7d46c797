from __future__ import annotations

from enum import Enum

from askexpert.response import cards


class _Keyword(str, Enum):
    @classmethod
    def parse(cls, text: str | None):
        folded = (text or "").strip().casefold()
        for member in cls:
            if member.value.casefold() == folded:
                return member
        return None


class PrivateCommand(_Keyword):
    """Keywords understood in a 1:1 chat before content search."""

    ASK_AN_EXPERT = cards.ASK_AN_EXPERT
    SHARE_FEEDBACK = cards.SHARE_FEEDBACK
    TAKE_A_TOUR = cards.TAKE_A_TOUR


class TeamCommand(_Keyword):
    """Keywords understood in a team channel."""

    TEAM_TOUR = cards.TEAM_TOUR


class SubmitAction(_Keyword):
    """Form submissions accepted in a 1:1 chat, keyed by the text the form sends."""

    ASK_AN_EXPERT = cards.ASK_AN_EXPERT
    SHARE_FEEDBACK = cards.SHARE_FEEDBACK
    ASK_AN_EXPERT_SUBMIT = cards.ASK_AN_EXPERT_SUBMIT
    SHARE_FEEDBACK_SUBMIT = cards.SHARE_FEEDBACK_SUBMIT
