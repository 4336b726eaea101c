"""Chroma implementation of the chunk-store abstraction.

Chroma requires a vector for every record, so chunks stored without an
embedding carry a zero placeholder and ``has_embedding=False`` in their
metadata; every vector read filters on that flag.  Chroma has no native
text index, so :meth:`ChromaChunkStore.text_search` scores the filtered
records with :func:`~formbridge_rag.retrieval.scoring.rank_by_text`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import chromadb

from formbridge_rag.config import settings
from formbridge_rag.errors import StoreError, StoreWriteError
from formbridge_rag.retrieval.base import ChunkStoreBase
from formbridge_rag.retrieval.models import ChunkFilter, KnowledgeChunk
from formbridge_rag.retrieval.scoring import rank_by_text

logger = logging.getLogger(__name__)

_KEYWORD_SEPARATOR = ","
_FULL_INCLUDE = ["documents", "metadatas", "embeddings"]


def _build_chroma_where(
    filters: ChunkFilter | None,
    has_embedding: bool | None = None,
) -> dict[str, Any] | None:
    """Convert a :class:`ChunkFilter` to Chroma ``where`` syntax."""
    clauses: list[dict[str, Any]] = []
    if filters is not None:
        if filters.category is not None:
            clauses.append({"category": {"$eq": filters.category}})
        if filters.source_id is not None:
            clauses.append({"source_id": {"$eq": filters.source_id}})
    if has_embedding is not None:
        clauses.append({"has_embedding": {"$eq": has_embedding}})

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _to_metadata(chunk: KnowledgeChunk) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool, and None is rejected.
    meta: dict[str, Any] = {
        "category": chunk.category,
        "title": chunk.title,
        "keywords": _KEYWORD_SEPARATOR.join(chunk.keywords),
        "has_embedding": chunk.has_embedding,
        "last_updated": chunk.last_updated.isoformat(),
    }
    if chunk.source_id is not None:
        meta["source_id"] = chunk.source_id
    if chunk.source is not None:
        meta["source"] = chunk.source
    return meta


def _from_record(chunk_id: str, content: str | None, meta: dict[str, Any], embedding: Any) -> KnowledgeChunk:
    keywords = meta.get("keywords") or ""
    vector = [float(x) for x in embedding] if meta.get("has_embedding") and embedding is not None else None
    return KnowledgeChunk(
        id=chunk_id,
        category=meta.get("category", settings.default_category),
        source_id=meta.get("source_id"),
        title=meta.get("title", ""),
        content=content or "",
        keywords=[kw for kw in keywords.split(_KEYWORD_SEPARATOR) if kw],
        source=meta.get("source"),
        embedding=vector,
        last_updated=datetime.fromisoformat(meta["last_updated"]),
    )


@contextmanager
def _backend_call(action: str, error: type[StoreError] = StoreError) -> Iterator[None]:
    """Re-raise any Chroma/transport failure as *error*."""
    try:
        yield
    except StoreError:
        raise
    except Exception as exc:
        raise error(f"Chroma {action} failed: {exc}") from exc


class ChromaChunkStore(ChunkStoreBase):
    """Chroma-backed chunk store.

    Every backend failure surfaces as :class:`StoreError` (writes as
    :class:`StoreWriteError`), never as a client or transport exception.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    dimension:
        Embedding width; used for the zero placeholder vector.
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()``); when
        omitted an ``HttpClient`` is created from *host* / *port*.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        dimension: int = settings.embedding_dimension,
        client: Any = None,
    ) -> None:
        super().__init__(collection_name)
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self._placeholder = [0.0] * dimension

    # -- ChunkStoreBase overrides ---------------------------------------------

    def insert(self, chunk: KnowledgeChunk) -> None:
        with _backend_call(f"insert of chunk {chunk.id}", StoreWriteError):
            # Chroma silently skips ids it already holds.
            if self._collection.get(ids=[chunk.id], include=[])["ids"]:
                raise StoreWriteError(f"Duplicate chunk id: {chunk.id}")
            self._collection.add(
                ids=[chunk.id],
                embeddings=[chunk.embedding or self._placeholder],
                documents=[chunk.content],
                metadatas=[_to_metadata(chunk)],
            )

    def get(self, chunk_id: str) -> KnowledgeChunk | None:
        chunks = self._read(ids=[chunk_id])
        return chunks[0] if chunks else None

    def delete(self, chunk_id: str) -> bool:
        with _backend_call(f"delete of chunk {chunk_id}", StoreWriteError):
            existing = self._collection.get(ids=[chunk_id], include=[])
            if not existing["ids"]:
                return False
            self._collection.delete(ids=[chunk_id])
            return True

    def delete_by_source_id(self, source_id: str) -> int:
        with _backend_call(f"delete of source {source_id}", StoreWriteError):
            existing = self._collection.get(where={"source_id": {"$eq": source_id}}, include=[])
            ids = existing["ids"]
            if ids:
                self._collection.delete(ids=ids)
            return len(ids)

    def count(self, filters: ChunkFilter | None = None) -> int:
        where = _build_chroma_where(filters)
        with _backend_call("count"):
            if where is None:
                return self._collection.count()
            return len(self._collection.get(where=where, include=[])["ids"])

    def distinct_source_ids(self) -> set[str]:
        with _backend_call("source listing"):
            results = self._collection.get(include=["metadatas"])
        return {meta["source_id"] for meta in results["metadatas"] or [] if meta and meta.get("source_id")}

    def find(
        self,
        filters: ChunkFilter | None = None,
        *,
        has_embedding: bool | None = None,
    ) -> list[KnowledgeChunk]:
        return self._read(where=_build_chroma_where(filters, has_embedding))

    def text_search(
        self,
        query: str,
        *,
        limit: int = 3,
        filters: ChunkFilter | None = None,
    ) -> list[tuple[KnowledgeChunk, float]]:
        return rank_by_text(query, self.find(filters), limit)

    def set_embedding(self, chunk_id: str, embedding: list[float], updated_at: datetime) -> None:
        existing = self.get(chunk_id)
        if existing is None:
            raise StoreWriteError(f"Chunk not found: {chunk_id}")
        updated = existing.model_copy(update={"embedding": list(embedding), "last_updated": updated_at})
        with _backend_call(f"update of chunk {chunk_id}", StoreWriteError):
            self._collection.update(
                ids=[chunk_id],
                embeddings=[updated.embedding],
                metadatas=[_to_metadata(updated)],
            )

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    # -- internals ------------------------------------------------------------

    def _read(self, **query: Any) -> list[KnowledgeChunk]:
        with _backend_call("read"):
            results = self._collection.get(include=_FULL_INCLUDE, **query)
        ids = results["ids"]
        docs = results.get("documents")
        metas = results.get("metadatas")
        embeddings = results.get("embeddings")

        chunks: list[KnowledgeChunk] = []
        for i, chunk_id in enumerate(ids):
            content = docs[i] if docs is not None else None
            meta = (metas[i] if metas is not None else None) or {}
            vector = embeddings[i] if embeddings is not None else None
            chunks.append(_from_record(chunk_id, content, meta, vector))
        return chunks
