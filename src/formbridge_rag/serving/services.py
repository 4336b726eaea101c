"""Explicit construction of every client the service needs.

Nothing in this package keeps module-level client handles: the app
builds one :class:`Services` bundle at startup and passes its parts to
the components as constructor arguments.  Tests build their own bundle
around fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from formbridge_rag.config import Settings, settings
from formbridge_rag.ingestion.embedder import EmbeddingClientBase, HuggingFaceEmbeddingClient, SafeEmbedder
from formbridge_rag.ingestion.extraction import AutoExtractionClient, ExtractionClientBase
from formbridge_rag.ingestion.knowledge_store import KnowledgeStore
from formbridge_rag.ingestion.orchestrator import IngestionOrchestrator
from formbridge_rag.ingestion.sources import DirectorySourceCatalog, SourceCatalogBase
from formbridge_rag.retrieval.base import ChunkStoreBase
from formbridge_rag.retrieval.memory_store import InMemoryChunkStore
from formbridge_rag.retrieval.retriever import HybridRetriever

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer talks to.

    ``embedder`` serves ingestion and backfill; ``query_embedder`` has its
    own pool so query embedding never waits behind chunk embedding.
    """

    store: ChunkStoreBase
    embedder: SafeEmbedder
    query_embedder: SafeEmbedder
    knowledge_store: KnowledgeStore
    retriever: HybridRetriever
    orchestrator: IngestionOrchestrator

    def close(self) -> None:
        self.orchestrator.close()
        self.embedder.close()
        self.query_embedder.close()


def build_store(config: Settings = settings) -> ChunkStoreBase:
    """Create the persistence backend named by ``config.store_backend``."""
    if config.store_backend == "memory":
        return InMemoryChunkStore(config.chroma_collection)
    if config.store_backend == "chroma":
        from formbridge_rag.retrieval.chroma_store import ChromaChunkStore

        return ChromaChunkStore(
            config.chroma_collection,
            host=config.chroma_host,
            port=config.chroma_port,
            dimension=config.embedding_dimension,
        )
    raise ValueError(f"Unsupported store_backend={config.store_backend!r}; use 'memory' or 'chroma'")


def build_services(
    config: Settings = settings,
    *,
    store: ChunkStoreBase | None = None,
    embedding_client: EmbeddingClientBase | None = None,
    extractor: ExtractionClientBase | None = None,
    catalog: SourceCatalogBase | None = None,
) -> Services:
    """Wire the components together; any collaborator can be overridden."""
    store = store if store is not None else build_store(config)
    if embedding_client is None:
        embedding_client = HuggingFaceEmbeddingClient(config.embedding_model)
    embedder = SafeEmbedder(
        embedding_client,
        dimension=config.embedding_dimension,
        max_concurrency=config.embedding_concurrency,
        timeout=config.embedding_timeout_seconds,
    )
    query_embedder = SafeEmbedder(
        embedding_client,
        dimension=config.embedding_dimension,
        max_concurrency=config.embedding_concurrency,
        timeout=config.embedding_timeout_seconds,
    )
    knowledge_store = KnowledgeStore(
        store,
        embedder,
        target_size=config.chunk_target_size,
        min_size=config.chunk_min_size,
        max_size=config.chunk_max_size,
        overlap=config.chunk_overlap,
    )
    orchestrator = IngestionOrchestrator(
        catalog
        if catalog is not None
        else DirectorySourceCatalog(
            config.source_directory,
            glob=config.source_glob,
            default_category=config.default_category,
        ),
        extractor if extractor is not None else AutoExtractionClient(),
        knowledge_store,
        extraction_timeout=config.extraction_timeout_seconds,
    )
    retriever = HybridRetriever(store, query_embedder, default_limit=config.search_default_limit)
    logger.info("Services ready (store=%s, collection=%s)", type(store).__name__, store.collection_name)
    return Services(
        store=store,
        embedder=embedder,
        query_embedder=query_embedder,
        knowledge_store=knowledge_store,
        retriever=retriever,
        orchestrator=orchestrator,
    )
