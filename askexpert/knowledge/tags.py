from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

import asyncpg

from .types import TaggedEntity


class TagIndex(Protocol):
    async def list_entities(self) -> Sequence[TaggedEntity]:
        ...


def tag_overlap_score(text: str, entity: TaggedEntity) -> int:
    """Count the entity's tags that occur as substrings of ``text``."""

    folded = text.casefold()
    return sum(1 for tag in entity.tag_list() if tag.casefold() in folded)


def rank_by_tags(text: str, entities: Sequence[TaggedEntity]) -> list[TaggedEntity]:
    """Return the entities sharing the highest non-zero tag overlap with ``text``.

    Ties keep the order of ``entities``. An empty list means no tag matched.
    """

    if not text or not text.strip():
        return []
    scored = [(tag_overlap_score(text, entity), entity) for entity in entities]
    best = max((score for score, _ in scored), default=0)
    if best <= 0:
        return []
    return [entity for score, entity in scored if score >= best]


class StaticTagIndex:
    """Tag index over a fixed sequence of entities."""

    def __init__(self, entities: Sequence[TaggedEntity] = ()) -> None:
        self._entities = tuple(entities)

    async def list_entities(self) -> Sequence[TaggedEntity]:
        return self._entities


class PostgresTagIndex:
    """Help tiles stored in Postgres."""

    _CREATE_SQL = """
    CREATE TABLE IF NOT EXISTS help_tiles (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        tags TEXT NULL,
        description TEXT NULL,
        url TEXT NULL,
        image_url TEXT NULL,
        position INTEGER NOT NULL DEFAULT 0
    )
    """

    _SELECT_SQL = """
    SELECT id, title, tags, description, url, image_url
    FROM help_tiles
    ORDER BY position ASC, id ASC
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_SQL)

    async def list_entities(self) -> Sequence[TaggedEntity]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_SQL)
        return [self._row_to_entity(row) for row in rows]

    @staticmethod
    def _row_to_entity(row: Mapping[str, Any]) -> TaggedEntity:
        return TaggedEntity(
            id=str(row["id"]),
            title=str(row["title"]),
            tags=row["tags"],
            description=row["description"],
            url=row["url"],
            image_url=row["image_url"],
        )
