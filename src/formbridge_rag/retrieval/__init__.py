"""
Retrieval — chunk persistence, hybrid search, and context assembly.

This module wraps the chunk store behind a clean interface so that
callers never need to know which DB is backing retrieval.

Public surface
--------------
- :class:`HybridRetriever` — main entry point for search and context.
- :class:`ChunkStoreBase` — abstract backend (subclass for MongoDB, etc.).
- :class:`InMemoryChunkStore` — in-process backend for tests and single-process servers.
- :class:`ChromaChunkStore` — default persistent Chroma backend.
- :class:`KnowledgeChunk`, :class:`ChunkFilter`, :class:`ScoredChunk` — data models.
- :func:`build_context` — ranked chunks → prompt context.
"""

from formbridge_rag.retrieval.base import ChunkStoreBase
from formbridge_rag.retrieval.context import build_context
from formbridge_rag.retrieval.memory_store import InMemoryChunkStore
from formbridge_rag.retrieval.models import ChunkDraft, ChunkFilter, KnowledgeChunk, ScoredChunk
from formbridge_rag.retrieval.retriever import HybridRetriever

__all__ = [
    "ChromaChunkStore",
    "ChunkDraft",
    "ChunkFilter",
    "ChunkStoreBase",
    "HybridRetriever",
    "InMemoryChunkStore",
    "KnowledgeChunk",
    "ScoredChunk",
    "build_context",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaChunkStore to avoid pulling in chromadb at import time."""
    if name == "ChromaChunkStore":
        from formbridge_rag.retrieval.chroma_store import ChromaChunkStore

        return ChromaChunkStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
