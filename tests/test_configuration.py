import logging
from unittest.mock import AsyncMock

import pytest

from askexpert.configuration.store import (
    ConfigurationKey,
    PostgresConfigurationStore,
    SettingsConfigurationStore,
    StaticConfigurationStore,
)
from askexpert.core.config import Settings
from askexpert.core.logging import ConversationFilter, bind_conversation, parse_otlp_headers


class DummyAcquire:
    def __init__(self, connection):
        self._connection = connection

    async def __aenter__(self):
        return self._connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummyPool:
    def __init__(self, connection):
        self._connection = connection

    def acquire(self):
        return DummyAcquire(self._connection)


@pytest.mark.asyncio
async def test_static_store_treats_empty_values_as_absent():
    store = StaticConfigurationStore({"team-id": "19:team", ConfigurationKey.WELCOME_TEXT: ""})

    assert await store.get(ConfigurationKey.TEAM_ID) == "19:team"
    assert await store.get(ConfigurationKey.WELCOME_TEXT) is None
    assert await store.get(ConfigurationKey.KNOWLEDGE_BASE_ID) is None


@pytest.mark.asyncio
async def test_settings_store_reads_runtime_fields():
    settings = Settings(team_id="19:team", knowledge_base_id="kb-1", knowledge_base_endpoint_key=None)
    store = SettingsConfigurationStore(settings)

    assert await store.get(ConfigurationKey.TEAM_ID) == "19:team"
    assert await store.get(ConfigurationKey.KNOWLEDGE_BASE_ID) == "kb-1"
    assert await store.get(ConfigurationKey.KNOWLEDGE_BASE_ENDPOINT_KEY) is None


@pytest.mark.asyncio
async def test_postgres_store_prefers_stored_value():
    connection = AsyncMock()
    connection.fetchval = AsyncMock(return_value="19:stored-team")
    fallback = StaticConfigurationStore({ConfigurationKey.TEAM_ID: "19:env-team"})
    store = PostgresConfigurationStore(DummyPool(connection), fallback=fallback)

    assert await store.get(ConfigurationKey.TEAM_ID) == "19:stored-team"
    assert connection.fetchval.await_args.args[1] == "team-id"


@pytest.mark.asyncio
async def test_postgres_store_falls_back_when_row_missing():
    connection = AsyncMock()
    connection.fetchval = AsyncMock(return_value=None)
    fallback = StaticConfigurationStore({ConfigurationKey.TEAM_ID: "19:env-team"})
    store = PostgresConfigurationStore(DummyPool(connection), fallback=fallback)

    assert await store.get(ConfigurationKey.TEAM_ID) == "19:env-team"
    assert await PostgresConfigurationStore(DummyPool(connection)).get(ConfigurationKey.TEAM_ID) is None


@pytest.mark.asyncio
async def test_postgres_store_set_and_schema():
    connection = AsyncMock()
    store = PostgresConfigurationStore(DummyPool(connection))

    await store.ensure_schema()
    await store.set(ConfigurationKey.WELCOME_TEXT, "Hello")

    create_call, upsert_call = connection.execute.await_args_list
    assert "CREATE TABLE IF NOT EXISTS configuration" in create_call.args[0]
    assert upsert_call.args[1:] == ("welcome-text", "Hello")


def test_parse_otlp_headers_skips_malformed_items():
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("api-key=abc, tenant = blue,broken,=x") == {"api-key": "abc", "tenant": "blue"}


def test_conversation_id_is_attached_to_records_inside_binding():
    log_filter = ConversationFilter()
    record = logging.LogRecord("askexpert.routing", logging.INFO, __file__, 1, "routed", None, None)

    with bind_conversation("a:private-1"):
        log_filter.filter(record)
    assert record.conversation_id == "a:private-1"

    log_filter.filter(record)
    assert record.conversation_id == "-"
