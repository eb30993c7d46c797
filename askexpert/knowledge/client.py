from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import httpx

from askexpert.configuration.store import ConfigurationKey, ConfigurationStore

from .types import KnowledgeBaseMatch

logger = logging.getLogger(__name__)


class KnowledgeBaseError(RuntimeError):
    """Raised when the knowledge base cannot be queried."""


class KnowledgeBaseClient(Protocol):
    async def query(self, text: str) -> Sequence[KnowledgeBaseMatch]:
        ...


class QnAMakerKnowledgeBaseClient:
    """Query a QnA Maker knowledge base through its ``generateAnswer`` endpoint.

    The knowledge-base id and endpoint key are read from the configuration
    store on every call so that an administrator can swap knowledge bases
    without restarting the service.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        configuration: ConfigurationStore,
        *,
        host: str,
        top: int = 1,
    ) -> None:
        if top <= 0:
            raise ValueError("top must be greater than zero")
        self._client = client
        self._configuration = configuration
        self._host = host.rstrip("/")
        self._top = top

    async def query(self, text: str) -> list[KnowledgeBaseMatch]:
        knowledge_base_id = await self._configuration.get(ConfigurationKey.KNOWLEDGE_BASE_ID)
        if not knowledge_base_id:
            raise KnowledgeBaseError("Knowledge base id is not configured")
        endpoint_key = await self._configuration.get(ConfigurationKey.KNOWLEDGE_BASE_ENDPOINT_KEY)
        if not endpoint_key:
            raise KnowledgeBaseError("Knowledge base endpoint key is not configured")

        try:
            response = await self._client.post(
                f"{self._host}/knowledgebases/{knowledge_base_id}/generateAnswer",
                headers={"Authorization": f"EndpointKey {endpoint_key}"},
                json={"question": text, "top": self._top},
            )
        except httpx.HTTPError as exc:
            raise KnowledgeBaseError(f"Knowledge base request failed: {exc}") from exc
        if response.status_code >= 400:
            raise KnowledgeBaseError(f"Knowledge base returned HTTP {response.status_code}")

        matches = [match for match in map(_to_match, response.json().get("answers") or []) if match is not None]
        logger.info(
            "Received %d answers from the knowledge base, top score %s",
            len(matches),
            matches[0].score if matches else 0,
        )
        return matches


def _to_match(answer: dict[str, Any]) -> KnowledgeBaseMatch | None:
    # the service reports "no good match" as an answer with score 0
    score = float(answer.get("score") or 0.0)
    if score <= 0:
        return None
    questions = answer.get("questions") or []
    return KnowledgeBaseMatch(
        question=str(questions[0]) if questions else "",
        answer=str(answer.get("answer", "")),
        score=score,
    )
