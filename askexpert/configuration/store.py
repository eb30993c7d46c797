from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Protocol

import asyncpg

from askexpert.core.config import Settings

logger = logging.getLogger(__name__)


class ConfigurationKey(str, Enum):
    """Keys of the runtime values read by the router and ticket lifecycle."""

    WELCOME_TEXT = "welcome-text"
    KNOWLEDGE_BASE_ID = "knowledge-base-id"
    KNOWLEDGE_BASE_ENDPOINT_KEY = "knowledge-base-endpoint-key"
    TEAM_ID = "team-id"


class ConfigurationStore(Protocol):
    async def get(self, key: ConfigurationKey) -> str | None:
        ...


def _present(value: object) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


class StaticConfigurationStore:
    """Configuration answered from a fixed mapping."""

    def __init__(self, values: Mapping[ConfigurationKey | str, str | None] | None = None) -> None:
        self._values = {ConfigurationKey(key): value for key, value in (values or {}).items()}

    async def get(self, key: ConfigurationKey) -> str | None:
        return _present(self._values.get(key))


class SettingsConfigurationStore:
    """Configuration answered from environment-backed :class:`Settings`."""

    _FIELDS: Mapping[ConfigurationKey, str] = {
        ConfigurationKey.WELCOME_TEXT: "welcome_text",
        ConfigurationKey.KNOWLEDGE_BASE_ID: "knowledge_base_id",
        ConfigurationKey.KNOWLEDGE_BASE_ENDPOINT_KEY: "knowledge_base_endpoint_key",
        ConfigurationKey.TEAM_ID: "team_id",
    }

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def get(self, key: ConfigurationKey) -> str | None:
        return _present(getattr(self._settings, self._FIELDS[key]))


class PostgresConfigurationStore:
    """Configuration rows stored in Postgres with a fallback store for absent keys."""

    _CREATE_SQL = """
    CREATE TABLE IF NOT EXISTS configuration (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    _SELECT_SQL = """
    SELECT value FROM configuration WHERE key = $1
    """

    _UPSERT_SQL = """
    INSERT INTO configuration (key, value)
    VALUES ($1, $2)
    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP
    """

    def __init__(self, pool: asyncpg.Pool, *, fallback: ConfigurationStore | None = None) -> None:
        self._pool = pool
        self._fallback = fallback

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_SQL)

    async def get(self, key: ConfigurationKey) -> str | None:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._SELECT_SQL, key.value)
        value = _present(value)
        if value is None and self._fallback is not None:
            logger.debug("Configuration key %s not stored, using fallback", key.value)
            return await self._fallback.get(key)
        return value

    async def set(self, key: ConfigurationKey, value: str) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._UPSERT_SQL, key.value, value)
