from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from opentelemetry import trace

from askexpert import metrics
from askexpert.knowledge.client import KnowledgeBaseClient
from askexpert.knowledge.tags import TagIndex, rank_by_tags
from askexpert.messaging.models import OutboundMessage
from askexpert.response import cards

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True, slots=True)
class LookupResult:
    """Reply produced by the first lookup strategy that found something."""

    strategy: str
    message: OutboundMessage


class LookupStrategy(Protocol):
    name: str

    async def lookup(self, text: str) -> OutboundMessage | None:
        ...


class KnowledgeBaseLookup:
    """Render the top knowledge-base match as an answer card."""

    name = "knowledge_base"

    def __init__(self, client: KnowledgeBaseClient) -> None:
        self._client = client

    async def lookup(self, text: str) -> OutboundMessage | None:
        if not text.strip():
            return None
        matches = await self._client.query(text)
        if not matches:
            return None
        top = matches[0]
        return OutboundMessage.from_card(cards.response_card(top.question, top.answer, text))


class TagLookup:
    """Suggest help entities whose tags best overlap the message."""

    name = "tags"

    def __init__(self, index: TagIndex) -> None:
        self._index = index

    async def lookup(self, text: str) -> OutboundMessage | None:
        if not text.strip():
            return None
        entities = await self._index.list_entities()
        if not entities:
            logger.info("No tagged entities in the index")
            return None
        ranked = rank_by_tags(text, entities)
        if not ranked:
            return None
        return cards.tags_carousel(text, ranked)


async def first_match(strategies: Sequence[LookupStrategy], text: str) -> LookupResult | None:
    """Run ``strategies`` in order and return the first non-empty result.

    A strategy that raises is logged and counted as a miss.
    """

    for strategy in strategies:
        with tracer.start_as_current_span(f"lookup.{strategy.name}"):
            try:
                message = await strategy.lookup(text)
            except Exception:
                logger.warning("Lookup %s failed, treating it as no match", strategy.name, exc_info=True)
                metrics.record_lookup_failure(strategy.name)
                continue
        if message is not None:
            return LookupResult(strategy=strategy.name, message=message)
    return None
