"""Inbound message classification and dispatch."""

from .commands import PrivateCommand, SubmitAction, TeamCommand
from .router import MessageRouter
from .strategies import KnowledgeBaseLookup, LookupResult, LookupStrategy, TagLookup, first_match

__all__ = [
    "KnowledgeBaseLookup",
    "LookupResult",
    "LookupStrategy",
    "MessageRouter",
    "PrivateCommand",
    "SubmitAction",
    "TagLookup",
    "TeamCommand",
    "first_match",
]
