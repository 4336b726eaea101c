"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator

import pytest

from formbridge_rag.errors import EmbeddingFailedError, ExtractionFailedError
from formbridge_rag.ingestion.embedder import EmbeddingClientBase, SafeEmbedder
from formbridge_rag.ingestion.extraction import ExtractedText, ExtractionClientBase
from formbridge_rag.ingestion.knowledge_store import KnowledgeStore
from formbridge_rag.retrieval.memory_store import InMemoryChunkStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake collaborators ──────────────────────────────────────────────────


class FakeEmbeddingClient(EmbeddingClientBase):
    """Deterministic embedding client.

    Texts found in *vectors* get that vector, anything else gets *default*.
    Setting ``fail_all`` or adding substrings to ``fail_when`` makes
    matching calls raise :class:`EmbeddingFailedError`.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        default: list[float] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.default = default
        self.delay = delay
        self.fail_all = False
        self.fail_when: set[str] = set()
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail_all or any(marker in text for marker in self.fail_when):
                raise EmbeddingFailedError("embedding service unavailable")
            if text in self.vectors:
                return list(self.vectors[text])
            if self.default is None:
                raise EmbeddingFailedError(f"no vector for {text!r}")
            return list(self.default)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeExtractionClient(ExtractionClientBase):
    """Decodes bytes as UTF-8; ``fail`` or ``delay`` simulate a bad backend."""

    def __init__(self, *, page_count: int = 1, fail: bool = False, delay: float = 0.0) -> None:
        self.page_count = page_count
        self.fail = fail
        self.delay = delay
        self.calls = 0
        self.on_extract: Callable[[], None] | None = None

    def extract(self, data: bytes) -> ExtractedText:
        self.calls += 1
        if self.on_extract is not None:
            self.on_extract()
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise ExtractionFailedError("No text could be extracted from document (may be scanned/image-based)")
        return ExtractedText(text=data.decode("utf-8"), page_count=self.page_count)


def make_paragraph(tag: str, length: int) -> str:
    """Whitespace-clean paragraph of exactly *length* characters with unique words."""
    words: list[str] = []
    size = -1
    i = 0
    while size < length:
        word = f"{tag}{i}"
        words.append(word)
        size += len(word) + 1
        i += 1
    text = " ".join(words)[:length]
    if text.endswith(" "):
        text = text[:-1] + "x"
    return text


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def paragraph() -> Callable[[str, int], str]:
    return make_paragraph


@pytest.fixture()
def embedding_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient(default=[1.0, 0.0])


@pytest.fixture()
def fake_embedding_client_cls() -> type[FakeEmbeddingClient]:
    return FakeEmbeddingClient


@pytest.fixture()
def fake_extraction_client_cls() -> type[FakeExtractionClient]:
    return FakeExtractionClient


@pytest.fixture()
def embedder(embedding_client: FakeEmbeddingClient) -> Iterator[SafeEmbedder]:
    safe = SafeEmbedder(embedding_client, dimension=2, max_concurrency=4, timeout=5.0)
    yield safe
    safe.close()


@pytest.fixture()
def store() -> InMemoryChunkStore:
    return InMemoryChunkStore("test-collection")


@pytest.fixture()
def knowledge_store(store: InMemoryChunkStore, embedder: SafeEmbedder) -> KnowledgeStore:
    return KnowledgeStore(store, embedder, target_size=800, min_size=200, max_size=1200, overlap=100)
