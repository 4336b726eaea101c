"""Hybrid retriever — vector similarity with text-search fallback.

This module is the **primary public interface** for retrieval.

Usage::

    from formbridge_rag.retrieval.retriever import HybridRetriever

    retriever = HybridRetriever(store, embedder)
    for hit in retriever.search("income exemption", category="government"):
        print(hit.chunk.title, hit.score)
"""

from __future__ import annotations

import logging

from formbridge_rag.config import settings
from formbridge_rag.errors import InputValidationError, StoreError
from formbridge_rag.ingestion.embedder import Embedded, SafeEmbedder
from formbridge_rag.retrieval.base import ChunkStoreBase
from formbridge_rag.retrieval.context import build_context
from formbridge_rag.retrieval.models import ChunkFilter, ScoredChunk
from formbridge_rag.retrieval.scoring import cosine_similarity

logger = logging.getLogger(__name__)


class HybridRetriever:
    """Ranks stored chunks for a query.

    The vector path embeds the query and scores every filtered chunk that
    has an embedding by cosine similarity.  When the query cannot be
    embedded, or no filtered chunk has a vector, the store's native text
    search answers instead.

    Parameters
    ----------
    store:
        A concrete chunk-store backend.
    embedder:
        Embeds the query with a bounded timeout.
    default_limit:
        Number of results when the caller gives no ``limit``.
    """

    def __init__(
        self,
        store: ChunkStoreBase,
        embedder: SafeEmbedder,
        *,
        default_limit: int = settings.search_default_limit,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_limit = default_limit

    # -- public API -----------------------------------------------------------

    def search(
        self,
        query: str,
        *,
        category: str | None = None,
        source_id: str | None = None,
        limit: int | None = None,
    ) -> list[ScoredChunk]:
        """Return at most *limit* chunks, best first.

        Raises
        ------
        InputValidationError
            If *query* is blank or *limit* is below 1.  Nothing else
            raises; "no matches" is an empty list.
        """
        if not query or not query.strip():
            raise InputValidationError("Search query must not be empty")
        limit = self.default_limit if limit is None else limit
        if limit < 1:
            raise InputValidationError(f"limit must be >= 1, got {limit}")

        filters = ChunkFilter(category=category, source_id=source_id)

        outcome = self._embedder.embed(query)
        if isinstance(outcome, Embedded):
            results = self._vector_search(outcome.vector, filters, limit)
            if results:
                logger.debug("Vector search found %d results", len(results))
                return results
            logger.debug("Vector search found nothing, falling back to text search")
        else:
            logger.info("Query embedding unavailable (%s), falling back to text search", outcome.reason)

        return self._text_search(query, filters, limit)

    def context(
        self,
        query: str,
        *,
        category: str | None = None,
        source_id: str | None = None,
    ) -> str:
        """Search with the default limit and format the hits for a prompt."""
        return build_context(self.search(query, category=category, source_id=source_id))

    # -- internals ------------------------------------------------------------

    def _vector_search(self, query_vector: list[float], filters: ChunkFilter, limit: int) -> list[ScoredChunk]:
        try:
            candidates = self._store.find(filters, has_embedding=True)
        except StoreError:
            logger.error("Vector candidate lookup failed", exc_info=True)
            return []
        scored: list[ScoredChunk] = []
        for chunk in candidates:
            if chunk.embedding is None or len(chunk.embedding) != len(query_vector):
                logger.warning("Skipping chunk %s with mismatched embedding", chunk.id)
                continue
            scored.append(
                ScoredChunk(chunk=chunk, score=cosine_similarity(query_vector, chunk.embedding), method="vector")
            )
        # sorted() is stable, so equal scores keep store order.
        scored.sort(key=lambda hit: -hit.score)
        return scored[:limit]

    def _text_search(self, query: str, filters: ChunkFilter, limit: int) -> list[ScoredChunk]:
        try:
            hits = self._store.text_search(query, limit=limit, filters=filters)
        except Exception:
            logger.error("Text search failed", exc_info=True)
            return []
        logger.debug("Text search found %d results", len(hits))
        return [ScoredChunk(chunk=chunk, score=score, method="text") for chunk, score in hits]
