"""Domain models for knowledge chunks and retrieval results."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

KNOWN_CATEGORIES: frozenset[str] = frozenset(
    {"employment", "finance", "government", "legal", "healthcare", "immigration", "general"}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChunkDraft(BaseModel):
    """Everything needed to create a :class:`KnowledgeChunk` except its id."""

    category: str
    source_id: str | None = None
    title: str
    content: str
    keywords: list[str] = Field(default_factory=list)
    source: str | None = None

    def embedding_text(self) -> str:
        """Text handed to the embedding client for this chunk."""
        return f"{self.title} {self.content}"


class KnowledgeChunk(ChunkDraft):
    """The retrievable unit persisted by a :class:`ChunkStoreBase`.

    Attributes
    ----------
    id:
        Globally unique identifier assigned at creation.
    embedding:
        Fixed-dimension vector, or ``None`` for a text-search-only chunk.
    last_updated:
        Set on creation and on embedding backfill; never on other edits.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    embedding: list[float] | None = None
    last_updated: datetime = Field(default_factory=utc_now)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


class ChunkFilter(BaseModel):
    """Equality filter on the two indexed chunk fields.

    ``None`` means "any value".
    """

    category: str | None = None
    source_id: str | None = None

    def matches(self, chunk: KnowledgeChunk) -> bool:
        if self.category is not None and chunk.category != self.category:
            return False
        if self.source_id is not None and chunk.source_id != self.source_id:
            return False
        return True


class ScoredChunk(BaseModel):
    """A retrieved chunk, its relevance score, and the path that found it."""

    chunk: KnowledgeChunk
    score: float
    method: Literal["vector", "text"] = "vector"
