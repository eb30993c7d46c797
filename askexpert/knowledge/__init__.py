"""Knowledge-base and tag lookups used as content search fallbacks."""

from .client import KnowledgeBaseClient, KnowledgeBaseError, QnAMakerKnowledgeBaseClient
from .tags import PostgresTagIndex, StaticTagIndex, TagIndex, rank_by_tags, tag_overlap_score
from .types import KnowledgeBaseMatch, TaggedEntity

__all__ = [
    "KnowledgeBaseClient",
    "KnowledgeBaseError",
    "KnowledgeBaseMatch",
    "PostgresTagIndex",
    "QnAMakerKnowledgeBaseClient",
    "StaticTagIndex",
    "TagIndex",
    "TaggedEntity",
    "rank_by_tags",
    "tag_overlap_score",
]
