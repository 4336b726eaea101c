"""Ingestion orchestrator — catalog → extraction → knowledge store.

Usage::

    orchestrator = IngestionOrchestrator(catalog, AutoExtractionClient(), knowledge_store)
    result = orchestrator.ingest("government/ontario-works")
    batch = orchestrator.ingest_all_pending()
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from formbridge_rag.config import settings
from formbridge_rag.errors import ExtractionFailedError, SourceNotFoundError, StoreError
from formbridge_rag.ingestion.extraction import ExtractedText, ExtractionClientBase
from formbridge_rag.ingestion.knowledge_store import KnowledgeStore
from formbridge_rag.ingestion.models import BatchIngestionResult, IngestionResult, IngestionStatus
from formbridge_rag.ingestion.sources import SourceCatalogBase, SourceDocument

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """Drives single-document and batch ingestion.

    Parameters
    ----------
    catalog:
        Where source documents are listed and read from.
    extractor:
        Bytes → text client.
    knowledge_store:
        Chunking, embedding, and persistence.
    extraction_timeout:
        Seconds allowed for reading + extracting one document.
    """

    def __init__(
        self,
        catalog: SourceCatalogBase,
        extractor: ExtractionClientBase,
        knowledge_store: KnowledgeStore,
        *,
        extraction_timeout: float = settings.extraction_timeout_seconds,
    ) -> None:
        self.catalog = catalog
        self.extractor = extractor
        self.knowledge_store = knowledge_store
        self.extraction_timeout = extraction_timeout
        # A timed-out extraction keeps its worker until it returns; the spare
        # worker lets the next document start meanwhile.
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="extract")

    # -- public API -----------------------------------------------------------

    def ingest(self, source_id: str, force: bool = False) -> IngestionResult:
        """Ingest one source document.

        Already-ingested documents are reported without touching the
        extractor unless *force* is set.  Extraction runs before any
        forced delete, so a failed extraction leaves the old chunks in
        place.
        """
        source = self.catalog.get(source_id)
        if source is None:
            return IngestionResult.failure(source_id, "not_found", f"Source document not found: {source_id}")

        try:
            current = self.knowledge_store.status(source_id)
        except StoreError as exc:
            logger.warning("Could not check ingestion status of %s: %s", source_id, exc)
            return IngestionResult.failure(source_id, "store_write_failed", str(exc))
        if current.is_ingested and not force:
            logger.info("Source %s already ingested with %d chunks", source_id, current.chunk_count)
            return IngestionResult(
                status="already_ingested",
                source_id=source_id,
                chunks_created=current.chunk_count,
            )

        try:
            extracted = self._extract(source)
        except ExtractionFailedError as exc:
            logger.warning("Extraction failed for %s: %s", source_id, exc)
            return IngestionResult.failure(source_id, "extraction_failed", str(exc))

        logger.info(
            "Extracted %d characters from %d pages of %s",
            len(extracted.text),
            extracted.page_count,
            source_id,
        )
        result = self.knowledge_store.ingest_document(
            source_id,
            extracted.text,
            force,
            category=source.category,
            name=source.name,
            page_count=extracted.page_count,
        )
        logger.info(
            "Ingestion of %s: %s (%d created, %d failed)",
            source_id,
            result.status,
            result.chunks_created,
            result.chunks_failed,
        )
        return result

    def ingest_all_pending(self, cancel_event: threading.Event | None = None) -> BatchIngestionResult:
        """Ingest every catalog document that has no chunks yet.

        Documents are processed one at a time.  Setting *cancel_event*
        stops the batch before the next document starts; the document in
        progress always finishes, so no partial state is left behind.
        """
        batch = BatchIngestionResult()
        try:
            ingested = self.knowledge_store.ingested_source_ids()
        except StoreError as exc:
            logger.error("Batch ingestion aborted, store unavailable: %s", exc)
            batch.error = str(exc)
            return batch
        pending = [s for s in self.catalog.list_sources() if s.id not in ingested]
        logger.info("Found %d source documents pending ingestion", len(pending))

        for source in pending:
            if cancel_event is not None and cancel_event.is_set():
                batch.cancelled = True
                logger.info("Batch ingestion cancelled with %d documents remaining", len(pending) - batch.processed)
                break

            result = self.ingest(source.id)
            batch.results.append(result)
            batch.processed += 1
            if result.status == "completed":
                batch.succeeded += 1
            elif result.status == "failed":
                batch.failed += 1
        return batch

    def status(self, source_id: str) -> IngestionStatus:
        """Store status enriched with the catalog's name and category."""
        status = self.knowledge_store.status(source_id)
        source = self.catalog.get(source_id)
        if source is not None:
            status.name = source.name
            status.category = source.category
        return status

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    # -- internals ------------------------------------------------------------

    def _extract(self, source: SourceDocument) -> ExtractedText:
        future = self._pool.submit(self._read_and_extract, source)
        try:
            return future.result(timeout=self.extraction_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise ExtractionFailedError(
                f"Extraction timed out after {self.extraction_timeout:.0f}s"
            ) from None

    def _read_and_extract(self, source: SourceDocument) -> ExtractedText:
        try:
            data = self.catalog.read_bytes(source)
        except (OSError, SourceNotFoundError) as exc:
            raise ExtractionFailedError(f"Could not read {source.path}: {exc}") from exc
        try:
            return self.extractor.extract(data)
        except ExtractionFailedError:
            raise
        except Exception as exc:
            # Parsers fail on corrupt input with arbitrary exception types.
            raise ExtractionFailedError(f"Unreadable document: {exc}") from exc
