"""Vector-search knowledge base backed by Qdrant."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Sequence

from qdrant_client import AsyncQdrantClient

from .client import KnowledgeBaseError
from .types import KnowledgeBaseMatch


@dataclass(slots=True)
class QuestionEncoderConfig:
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str | None = None


class QuestionEncoder:
    """Lazily loaded sentence-transformers model turning a question into a vector."""

    def __init__(
        self,
        config: QuestionEncoderConfig | None = None,
        *,
        model_factory: Callable[[str, str | None], object] | None = None,
    ) -> None:
        self.config = config or QuestionEncoderConfig()
        self._model = None
        self._model_factory = model_factory

    def _ensure_model(self) -> object:
        if self._model is not None:
            return self._model

        if self._model_factory is not None:
            self._model = self._model_factory(self.config.model_name, self.config.device)
            return self._model

        from sentence_transformers import SentenceTransformer

        self._model = SentenceTransformer(self.config.model_name, device=self.config.device)
        return self._model

    def encode(self, text: str) -> list[float]:
        model = self._ensure_model()
        vectors = model.encode([text], normalize_embeddings=True)  # type: ignore[attr-defined]
        return [float(value) for value in vectors[0]]


class QdrantKnowledgeBaseClient:
    """Answer questions with the closest stored question/answer pairs.

    Points in the collection carry ``question`` and ``answer`` payload keys.
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        encoder: QuestionEncoder,
        *,
        collection_name: str,
        top: int = 1,
        min_score: float = 0.0,
    ) -> None:
        self._client = client
        self._encoder = encoder
        self._collection_name = collection_name
        self._top = top
        self._min_score = min_score

    async def query(self, text: str) -> Sequence[KnowledgeBaseMatch]:
        vector = await asyncio.to_thread(self._encoder.encode, text)
        try:
            response = await self._client.query_points(
                collection_name=self._collection_name,
                query=vector,
                limit=self._top,
                with_payload=True,
            )
        except Exception as exc:
            raise KnowledgeBaseError(f"Vector search failed: {exc}") from exc

        matches: list[KnowledgeBaseMatch] = []
        for point in response.points:
            payload = point.payload or {}
            if point.score < self._min_score or "answer" not in payload:
                continue
            matches.append(
                KnowledgeBaseMatch(
                    question=str(payload.get("question", "")),
                    answer=str(payload["answer"]),
                    score=float(point.score),
                )
            )
        return matches

    async def close(self) -> None:
        await self._client.close()
