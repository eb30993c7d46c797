from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager

import asyncpg
import httpx
from fastapi import FastAPI
from qdrant_client import AsyncQdrantClient

from askexpert.api.routes import messages, ping, tickets
from askexpert.configuration.store import (
    ConfigurationStore,
    PostgresConfigurationStore,
    SettingsConfigurationStore,
)
from askexpert.core.config import Settings, get_settings
from askexpert.core.logging import configure_logging, init_tracer, shutdown_tracer
from askexpert.knowledge.client import KnowledgeBaseClient, QnAMakerKnowledgeBaseClient
from askexpert.knowledge.qdrant import QdrantKnowledgeBaseClient, QuestionEncoder, QuestionEncoderConfig
from askexpert.knowledge.tags import PostgresTagIndex, StaticTagIndex, TagIndex
from askexpert.messaging.notifier import BotConnectorCredentials, BotConnectorNotifier
from askexpert.routing.router import MessageRouter
from askexpert.routing.strategies import KnowledgeBaseLookup, TagLookup
from askexpert.tickets.lifecycle import TicketLifecycle
from askexpert.tickets.repository import InMemoryTicketStore, PostgresTicketStore, TicketStore


def _build_knowledge_base(
    settings: Settings,
    configuration: ConfigurationStore,
    http_client: httpx.AsyncClient,
    stack: AsyncExitStack,
) -> KnowledgeBaseClient:
    if settings.knowledge_base_backend == "qdrant":
        client = QdrantKnowledgeBaseClient(
            AsyncQdrantClient(host=settings.qdrant_host, port=settings.qdrant_port, api_key=settings.qdrant_api_key),
            QuestionEncoder(QuestionEncoderConfig(model_name=settings.embedding_model_name)),
            collection_name=settings.qdrant_collection_name,
            top=settings.knowledge_base_top,
            min_score=settings.qdrant_min_score,
        )
        stack.push_async_callback(client.close)
        return client
    return QnAMakerKnowledgeBaseClient(
        http_client,
        configuration,
        host=settings.knowledge_base_host,
        top=settings.knowledge_base_top,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app.state.logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)
    app.state.tracer_provider = tracer_provider

    async with AsyncExitStack() as stack:
        http_client = await stack.enter_async_context(httpx.AsyncClient(timeout=settings.bot_request_timeout))

        configuration: ConfigurationStore = SettingsConfigurationStore(settings)
        store: TicketStore = InMemoryTicketStore()
        tag_index: TagIndex = StaticTagIndex()
        if settings.postgres_dsn:
            pool = await asyncpg.create_pool(dsn=settings.postgres_dsn, min_size=1, max_size=5)
            stack.push_async_callback(pool.close)

            postgres_configuration = PostgresConfigurationStore(pool, fallback=configuration)
            postgres_store = PostgresTicketStore(pool)
            postgres_tags = PostgresTagIndex(pool)
            await postgres_configuration.ensure_schema()
            await postgres_store.ensure_schema()
            await postgres_tags.ensure_schema()
            configuration, store, tag_index = postgres_configuration, postgres_store, postgres_tags
        else:
            app.state.logger.warning("POSTGRES_DSN is not set; tickets are kept in memory")

        notifier = BotConnectorNotifier(
            http_client,
            default_service_url=settings.bot_service_url,
            credentials=BotConnectorCredentials(
                http_client,
                app_id=settings.bot_app_id,
                app_password=settings.bot_app_password,
                token_url=settings.bot_token_url,
                scope=settings.bot_token_scope,
            ),
        )
        knowledge_base = _build_knowledge_base(settings, configuration, http_client, stack)
        lifecycle = TicketLifecycle(store, notifier, configuration)

        app.state.ticket_lifecycle = lifecycle
        app.state.message_router = MessageRouter(
            notifier=notifier,
            lifecycle=lifecycle,
            configuration=configuration,
            lookups=(KnowledgeBaseLookup(knowledge_base), TagLookup(tag_index)),
            app_base_url=settings.app_base_url,
            expected_tenant_id=settings.expected_tenant_id,
        )
        try:
            yield
        finally:
            app.state.message_router = None
            app.state.ticket_lifecycle = None
            shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(messages.router)
    app.include_router(tickets.router)
    return app


app = create_app()
