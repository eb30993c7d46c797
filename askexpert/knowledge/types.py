from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class KnowledgeBaseMatch:
    """A ranked question/answer pair returned by the knowledge base."""

    question: str
    answer: str
    score: float


@dataclass(frozen=True, slots=True)
class TaggedEntity:
    """Help article tagged with comma separated keywords."""

    id: str
    title: str
    tags: str | None
    description: str | None = None
    url: str | None = None
    image_url: str | None = None

    def tag_list(self) -> list[str]:
        if not self.tags:
            return []
        return [tag.strip().lower() for tag in self.tags.split(",") if tag.strip()]
