"""In-process implementation of the chunk-store abstraction.

Used for local development, tests, and single-process deployments.  All
state sits behind one re-entrant lock and every read hands out copies,
so concurrent retrieval never observes a record mid-update.
"""

from __future__ import annotations

import threading
from datetime import datetime

from formbridge_rag.errors import StoreWriteError
from formbridge_rag.retrieval.base import ChunkStoreBase
from formbridge_rag.retrieval.models import ChunkFilter, KnowledgeChunk
from formbridge_rag.retrieval.scoring import rank_by_text


class InMemoryChunkStore(ChunkStoreBase):
    """Dictionary-backed chunk store preserving insertion order."""

    def __init__(self, collection_name: str = "knowledge") -> None:
        super().__init__(collection_name)
        self._records: dict[str, KnowledgeChunk] = {}
        self._lock = threading.RLock()

    def insert(self, chunk: KnowledgeChunk) -> None:
        with self._lock:
            if chunk.id in self._records:
                raise StoreWriteError(f"Duplicate chunk id: {chunk.id}")
            self._records[chunk.id] = chunk.model_copy(deep=True)

    def get(self, chunk_id: str) -> KnowledgeChunk | None:
        with self._lock:
            chunk = self._records.get(chunk_id)
            return chunk.model_copy(deep=True) if chunk is not None else None

    def delete(self, chunk_id: str) -> bool:
        with self._lock:
            return self._records.pop(chunk_id, None) is not None

    def delete_by_source_id(self, source_id: str) -> int:
        with self._lock:
            doomed = [cid for cid, chunk in self._records.items() if chunk.source_id == source_id]
            for cid in doomed:
                del self._records[cid]
            return len(doomed)

    def count(self, filters: ChunkFilter | None = None) -> int:
        with self._lock:
            if filters is None:
                return len(self._records)
            return sum(1 for chunk in self._records.values() if filters.matches(chunk))

    def distinct_source_ids(self) -> set[str]:
        with self._lock:
            return {chunk.source_id for chunk in self._records.values() if chunk.source_id is not None}

    def find(
        self,
        filters: ChunkFilter | None = None,
        *,
        has_embedding: bool | None = None,
    ) -> list[KnowledgeChunk]:
        with self._lock:
            hits: list[KnowledgeChunk] = []
            for chunk in self._records.values():
                if filters is not None and not filters.matches(chunk):
                    continue
                if has_embedding is not None and chunk.has_embedding != has_embedding:
                    continue
                hits.append(chunk.model_copy(deep=True))
            return hits

    def text_search(
        self,
        query: str,
        *,
        limit: int = 3,
        filters: ChunkFilter | None = None,
    ) -> list[tuple[KnowledgeChunk, float]]:
        return rank_by_text(query, self.find(filters), limit)

    def set_embedding(self, chunk_id: str, embedding: list[float], updated_at: datetime) -> None:
        with self._lock:
            chunk = self._records.get(chunk_id)
            if chunk is None:
                raise StoreWriteError(f"Chunk not found: {chunk_id}")
            self._records[chunk_id] = chunk.model_copy(
                update={"embedding": list(embedding), "last_updated": updated_at}
            )

    def health_check(self) -> bool:
        return True
