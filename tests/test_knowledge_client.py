from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from askexpert.configuration.store import ConfigurationKey, StaticConfigurationStore
from askexpert.knowledge.client import KnowledgeBaseError, QnAMakerKnowledgeBaseClient
from askexpert.knowledge.qdrant import QdrantKnowledgeBaseClient, QuestionEncoder, QuestionEncoderConfig

CONFIGURED = StaticConfigurationStore(
    {
        ConfigurationKey.KNOWLEDGE_BASE_ID: "kb-1",
        ConfigurationKey.KNOWLEDGE_BASE_ENDPOINT_KEY: "secret",
    }
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_generate_answer_request_and_parsing():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "answers": [
                    {"questions": ["How do I reset my password?"], "answer": "Use the portal.", "score": 87.5},
                    {"questions": [], "answer": "No good match found in KB.", "score": 0},
                ]
            },
        )

    async with _client(handler) as http:
        client = QnAMakerKnowledgeBaseClient(http, CONFIGURED, host="https://kb.test/qnamaker/", top=3)
        matches = await client.query("how do i reset password")

    assert len(matches) == 1
    assert matches[0].question == "How do I reset my password?"
    assert matches[0].answer == "Use the portal."
    assert matches[0].score == 87.5

    request = seen[0]
    assert str(request.url) == "https://kb.test/qnamaker/knowledgebases/kb-1/generateAnswer"
    assert request.headers["Authorization"] == "EndpointKey secret"
    assert json.loads(request.content) == {"question": "how do i reset password", "top": 3}


@pytest.mark.asyncio
async def test_missing_configuration_raises():
    async with _client(lambda request: httpx.Response(200, json={})) as http:
        client = QnAMakerKnowledgeBaseClient(
            http, StaticConfigurationStore({ConfigurationKey.KNOWLEDGE_BASE_ID: "kb-1"}), host="https://kb.test"
        )
        with pytest.raises(KnowledgeBaseError):
            await client.query("anything")


@pytest.mark.asyncio
async def test_http_error_raises():
    async with _client(lambda request: httpx.Response(503)) as http:
        client = QnAMakerKnowledgeBaseClient(http, CONFIGURED, host="https://kb.test")
        with pytest.raises(KnowledgeBaseError):
            await client.query("anything")


def test_top_must_be_positive():
    with pytest.raises(ValueError):
        QnAMakerKnowledgeBaseClient(httpx.AsyncClient(), CONFIGURED, host="https://kb.test", top=0)


class StubModel:
    def __init__(self):
        self.calls = []

    def encode(self, texts, normalize_embeddings=False):
        self.calls.append((tuple(texts), normalize_embeddings))
        return [[0.25, 0.75]]


def test_question_encoder_loads_model_once():
    created = []
    model = StubModel()

    def factory(name, device):
        created.append((name, device))
        return model

    encoder = QuestionEncoder(QuestionEncoderConfig(model_name="tiny-model"), model_factory=factory)

    assert encoder.encode("first") == [0.25, 0.75]
    assert encoder.encode("second") == [0.25, 0.75]
    assert created == [("tiny-model", None)]
    assert model.calls[0] == (("first",), True)


@pytest.mark.asyncio
async def test_qdrant_client_filters_low_scores_and_missing_answers():
    qdrant = AsyncMock()
    qdrant.query_points = AsyncMock(
        return_value=SimpleNamespace(
            points=[
                SimpleNamespace(score=0.91, payload={"question": "Reset password?", "answer": "Use the portal."}),
                SimpleNamespace(score=0.88, payload={"question": "Orphan"}),
                SimpleNamespace(score=0.2, payload={"question": "VPN?", "answer": "Restart it."}),
            ]
        )
    )
    encoder = QuestionEncoder(model_factory=lambda name, device: StubModel())
    client = QdrantKnowledgeBaseClient(qdrant, encoder, collection_name="faq", top=3, min_score=0.5)

    matches = await client.query("reset password")

    assert [(match.question, match.answer) for match in matches] == [("Reset password?", "Use the portal.")]
    kwargs = qdrant.query_points.await_args.kwargs
    assert kwargs["collection_name"] == "faq"
    assert kwargs["query"] == [0.25, 0.75]
    assert kwargs["limit"] == 3


@pytest.mark.asyncio
async def test_qdrant_failure_becomes_knowledge_base_error():
    qdrant = AsyncMock()
    qdrant.query_points = AsyncMock(side_effect=RuntimeError("connection refused"))
    encoder = QuestionEncoder(model_factory=lambda name, device: StubModel())
    client = QdrantKnowledgeBaseClient(qdrant, encoder, collection_name="faq")

    with pytest.raises(KnowledgeBaseError):
        await client.query("reset password")
