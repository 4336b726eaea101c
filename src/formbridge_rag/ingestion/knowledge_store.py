"""Knowledge store — idempotent ingestion, deletion, and embedding backfill.

Sits between the ingestion orchestrator and a :class:`ChunkStoreBase`
backend.  All document-level operations return result records; nothing
here raises for a single chunk's embedding or write failure.

Forced re-ingestion deletes the old chunks and then writes the new ones.
Chunking and embedding happen *before* the delete to keep it short, but
between the delete and the first write a concurrent reader can see the
document with zero chunks.  That window is accepted: stores give no
multi-record transactions, and readers treat "no chunks" as "not yet
ingested".
"""

from __future__ import annotations

import logging
import math

from formbridge_rag.config import settings
from formbridge_rag.errors import StoreError
from formbridge_rag.ingestion.chunker import TextChunk, chunk_text
from formbridge_rag.ingestion.embedder import Embedded, EmbeddingOutcome, SafeEmbedder
from formbridge_rag.ingestion.extraction import NO_TEXT_MESSAGE
from formbridge_rag.ingestion.keywords import chunk_keywords
from formbridge_rag.ingestion.models import IngestionResult, IngestionStatus, MigrationResult
from formbridge_rag.retrieval.base import ChunkStoreBase
from formbridge_rag.retrieval.models import ChunkDraft, ChunkFilter, KnowledgeChunk, utc_now

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Chunk lifecycle over a persistent store.

    Parameters
    ----------
    store:
        Persistence backend.
    embedder:
        Best-effort embedding with bounded concurrency.
    target_size / min_size / max_size / overlap:
        Chunking parameters forwarded to :func:`chunk_text`.
    """

    def __init__(
        self,
        store: ChunkStoreBase,
        embedder: SafeEmbedder,
        *,
        target_size: int = settings.chunk_target_size,
        min_size: int = settings.chunk_min_size,
        max_size: int = settings.chunk_max_size,
        overlap: int = settings.chunk_overlap,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.target_size = target_size
        self.min_size = min_size
        self.max_size = max_size
        self.overlap = overlap

    # -- single records -------------------------------------------------------

    def add_chunk(self, draft: ChunkDraft) -> KnowledgeChunk:
        """Embed *draft* best-effort and store it under a fresh id.

        An embedding failure stores the chunk without a vector; only a
        store write failure raises (:class:`~formbridge_rag.errors.StoreWriteError`).
        """
        return self._write(draft, self.embedder.embed(draft.embedding_text()))

    def delete_chunk(self, chunk_id: str) -> bool:
        return self.store.delete(chunk_id)

    def list_chunks(self, category: str | None = None) -> list[KnowledgeChunk]:
        """Every chunk (optionally in one category), most recently updated first."""
        chunks = self.store.find(ChunkFilter(category=category))
        return sorted(chunks, key=lambda c: c.last_updated, reverse=True)

    # -- documents ------------------------------------------------------------

    def ingest_document(
        self,
        source_id: str,
        raw_text: str,
        force: bool = False,
        *,
        category: str = settings.default_category,
        name: str | None = None,
        page_count: int = 1,
    ) -> IngestionResult:
        """Chunk, embed, and store *raw_text* as the chunks of *source_id*.

        Parameters
        ----------
        source_id:
            Document the chunks belong to.
        raw_text:
            Extracted plain text.
        force:
            Replace existing chunks instead of reporting ``already_ingested``.
        category:
            Category tag for every chunk.
        name:
            Document name used in titles and provenance (defaults to *source_id*).
        page_count:
            Page count of the original, for approximate page references.

        With *force*, the new chunks are built and embedded before the old
        ones are deleted, so text that yields no chunks leaves the document
        as it was.  A store failure outside the per-chunk writes returns a
        ``store_write_failed`` result.
        """
        try:
            existing = self.store.count(ChunkFilter(source_id=source_id))
        except StoreError as exc:
            logger.warning("Could not count chunks of %s: %s", source_id, exc)
            return IngestionResult.failure(source_id, "store_write_failed", str(exc))
        if existing and not force:
            return IngestionResult(status="already_ingested", source_id=source_id, chunks_created=existing)

        pieces = chunk_text(
            raw_text,
            target_size=self.target_size,
            min_size=self.min_size,
            max_size=self.max_size,
            overlap=self.overlap,
        )
        if not pieces:
            return IngestionResult.failure(source_id, "extraction_failed", NO_TEXT_MESSAGE)

        drafts = self._drafts(source_id, pieces, category=category, name=name or source_id, page_count=page_count)
        outcomes = self.embedder.embed_many([d.embedding_text() for d in drafts])

        if existing:
            try:
                deleted = self.store.delete_by_source_id(source_id)
            except StoreError as exc:
                logger.warning("Could not remove old chunks of %s: %s", source_id, exc)
                return IngestionResult.failure(source_id, "store_write_failed", str(exc))
            logger.debug("Force re-ingestion of %s removed %d chunks", source_id, deleted)

        created = failed = 0
        for draft, outcome in zip(drafts, outcomes):
            try:
                self._write(draft, outcome)
            except StoreError as exc:
                failed += 1
                logger.warning("Failed to store chunk %r of %s: %s", draft.title, source_id, exc)
            else:
                created += 1

        if created == 0:
            return IngestionResult(
                status="failed",
                source_id=source_id,
                chunks_failed=failed,
                error=f"All {failed} chunk writes failed",
                error_kind="store_write_failed",
            )
        return IngestionResult(
            status="completed",
            source_id=source_id,
            chunks_created=created,
            chunks_failed=failed,
        )

    def delete_by_source_id(self, source_id: str) -> int:
        """Remove every chunk of *source_id*; 0 when there were none."""
        return self.store.delete_by_source_id(source_id)

    def status(self, source_id: str) -> IngestionStatus:
        count = self.store.count(ChunkFilter(source_id=source_id))
        return IngestionStatus(source_id=source_id, is_ingested=count > 0, chunk_count=count)

    def ingested_source_ids(self) -> set[str]:
        return self.store.distinct_source_ids()

    # -- maintenance ----------------------------------------------------------

    def migrate_missing_embeddings(self) -> MigrationResult:
        """Backfill vectors for every chunk stored without one.

        Each chunk succeeds or fails on its own; the scan always runs to
        the end.  A store that cannot list chunks yields a result with
        ``error`` set.
        """
        result = MigrationResult()
        try:
            pending = self.store.find(has_embedding=False)
        except StoreError as exc:
            logger.warning("Could not list chunks without embeddings: %s", exc)
            result.error = str(exc)
            return result
        if not pending:
            return result

        outcomes = self.embedder.embed_many([chunk.embedding_text() for chunk in pending])
        for chunk, outcome in zip(pending, outcomes):
            if not isinstance(outcome, Embedded):
                result.failed += 1
                continue
            try:
                self.store.set_embedding(chunk.id, outcome.vector, utc_now())
            except StoreError as exc:
                result.failed += 1
                logger.warning("Failed to backfill embedding for %s: %s", chunk.id, exc)
            else:
                result.migrated += 1
        return result

    # -- internals ------------------------------------------------------------

    def _write(self, draft: ChunkDraft, outcome: EmbeddingOutcome) -> KnowledgeChunk:
        vector = outcome.vector if isinstance(outcome, Embedded) else None
        chunk = KnowledgeChunk(**draft.model_dump(), embedding=vector)
        self.store.insert(chunk)
        return chunk

    @staticmethod
    def _drafts(
        source_id: str,
        pieces: list[TextChunk],
        *,
        category: str,
        name: str,
        page_count: int,
    ) -> list[ChunkDraft]:
        total = len(pieces)
        return [
            ChunkDraft(
                category=category,
                source_id=source_id,
                title=f"{name} - Section {piece.index + 1}",
                content=piece.text,
                keywords=chunk_keywords(piece.text),
                source=f"PDF: {name} (Page ~{math.ceil((piece.index + 1) * page_count / total)})",
            )
            for piece in pieces
        ]
