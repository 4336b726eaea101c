"""Abstract base class for chunk-store backends.

Adding a new backend (MongoDB, Postgres …) only requires subclassing
:class:`ChunkStoreBase` and implementing the abstract methods.  The
knowledge store and the retriever are backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from formbridge_rag.retrieval.models import ChunkFilter, KnowledgeChunk


class ChunkStoreBase(ABC):
    """Backend-agnostic persistence for :class:`KnowledgeChunk` records.

    Every method is a single atomic operation from the caller's point of
    view: readers never see a half-written record.

    Backend failures raise :class:`~formbridge_rag.errors.StoreError`;
    failed writes raise its subclass ``StoreWriteError``.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / table / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def insert(self, chunk: KnowledgeChunk) -> None:
        """Persist one new record.  Raises ``StoreWriteError`` on failure."""
        ...

    @abstractmethod
    def get(self, chunk_id: str) -> KnowledgeChunk | None:
        """Return the record with *chunk_id*, or ``None``."""
        ...

    @abstractmethod
    def delete(self, chunk_id: str) -> bool:
        """Delete one record; ``True`` if it existed."""
        ...

    @abstractmethod
    def delete_by_source_id(self, source_id: str) -> int:
        """Delete every record for *source_id* and return how many went."""
        ...

    @abstractmethod
    def count(self, filters: ChunkFilter | None = None) -> int:
        """Number of records matching *filters*."""
        ...

    @abstractmethod
    def distinct_source_ids(self) -> set[str]:
        """Every ``source_id`` that has at least one record."""
        ...

    @abstractmethod
    def find(
        self,
        filters: ChunkFilter | None = None,
        *,
        has_embedding: bool | None = None,
    ) -> list[KnowledgeChunk]:
        """Return matching records in insertion order.

        Parameters
        ----------
        filters:
            Optional category / source filter.
        has_embedding:
            ``True`` keeps only records with a vector, ``False`` only those
            without one, ``None`` returns both.
        """
        ...

    @abstractmethod
    def text_search(
        self,
        query: str,
        *,
        limit: int = 3,
        filters: ChunkFilter | None = None,
    ) -> list[tuple[KnowledgeChunk, float]]:
        """Rank records by the backend's native text relevance.

        Returns ``(chunk, score)`` pairs, best first; chunks that share no
        term with *query* are left out.
        """
        ...

    @abstractmethod
    def set_embedding(self, chunk_id: str, embedding: list[float], updated_at: datetime) -> None:
        """Attach *embedding* to an existing record (backfill)."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...
