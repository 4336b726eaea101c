"""Unit tests for KnowledgeStore: ingestion, deletion, and embedding backfill."""

from __future__ import annotations

import pytest

from formbridge_rag.errors import StoreError, StoreWriteError
from formbridge_rag.ingestion.knowledge_store import KnowledgeStore
from formbridge_rag.retrieval.memory_store import InMemoryChunkStore
from formbridge_rag.retrieval.models import ChunkDraft, ChunkFilter, KnowledgeChunk


class FlakyStore(InMemoryChunkStore):
    """Rejects inserts whose content contains one of ``reject`` markers."""

    def __init__(self, *reject: str) -> None:
        super().__init__("flaky")
        self.reject = set(reject)

    def insert(self, chunk: KnowledgeChunk) -> None:
        if any(marker in chunk.content for marker in self.reject):
            raise StoreWriteError("disk full")
        super().insert(chunk)


class BrokenStore(InMemoryChunkStore):
    """Raises StoreError from the operations named in ``broken``."""

    def __init__(self) -> None:
        super().__init__("broken")
        self.broken: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.broken:
            raise StoreError(f"Chroma {operation} failed: connection reset")

    def count(self, filters=None) -> int:
        self._check("count")
        return super().count(filters)

    def delete_by_source_id(self, source_id: str) -> int:
        self._check("delete_by_source_id")
        return super().delete_by_source_id(source_id)

    def find(self, filters=None, **kwargs):
        self._check("find")
        return super().find(filters, **kwargs)


@pytest.fixture()
def document(paragraph) -> str:
    return "\n\n".join(paragraph(tag, 748) for tag in ("alpha", "beta", "gamma", "delta"))


class TestAddChunk:
    def test_stores_chunk_with_embedding(self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore) -> None:
        chunk = knowledge_store.add_chunk(
            ChunkDraft(category="legal", title="NDA", content="Confidential info.", keywords=["nda"])
        )
        stored = store.get(chunk.id)
        assert stored is not None
        assert stored.embedding == [1.0, 0.0]
        assert stored.source_id is None

    def test_embedding_failure_stores_without_vector(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, embedding_client
    ) -> None:
        embedding_client.fail_all = True
        chunk = knowledge_store.add_chunk(ChunkDraft(category="legal", title="NDA", content="Confidential."))
        assert store.get(chunk.id).embedding is None

    def test_delete_chunk(self, knowledge_store: KnowledgeStore) -> None:
        chunk = knowledge_store.add_chunk(ChunkDraft(category="general", title="t", content="c"))
        assert knowledge_store.delete_chunk(chunk.id) is True
        assert knowledge_store.delete_chunk(chunk.id) is False

    def test_list_chunks_newest_first(self, knowledge_store: KnowledgeStore) -> None:
        first = knowledge_store.add_chunk(ChunkDraft(category="legal", title="first", content="a"))
        second = knowledge_store.add_chunk(ChunkDraft(category="legal", title="second", content="b"))
        knowledge_store.add_chunk(ChunkDraft(category="finance", title="other", content="c"))

        listed = knowledge_store.list_chunks("legal")

        assert {c.id for c in listed} == {first.id, second.id}
        assert listed[0].last_updated >= listed[1].last_updated
        assert len(knowledge_store.list_chunks()) == 3


class TestIngestDocument:
    def test_creates_titled_chunks(self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, document) -> None:
        result = knowledge_store.ingest_document(
            "government/ow", document, category="government", name="Ontario Works", page_count=4
        )

        assert result.status == "completed"
        assert result.chunks_failed == 0
        chunks = store.find(ChunkFilter(source_id="government/ow"))
        assert len(chunks) == result.chunks_created >= 3
        titles = sorted(c.title for c in chunks)
        assert titles[0] == "Ontario Works - Section 1"
        assert all(c.category == "government" for c in chunks)
        assert all(c.keywords for c in chunks)
        assert all(c.embedding == [1.0, 0.0] for c in chunks)

    def test_page_estimates_reach_last_page(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, document
    ) -> None:
        knowledge_store.ingest_document("doc", document, name="Form", page_count=4)
        chunks = store.find(ChunkFilter(source_id="doc"))
        by_title = {c.title: c.source for c in chunks}
        assert by_title["Form - Section 1"].startswith("PDF: Form (Page ~")
        assert by_title[f"Form - Section {len(chunks)}"] == "PDF: Form (Page ~4)"

    def test_second_ingest_is_idempotent(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, document, embedding_client
    ) -> None:
        first = knowledge_store.ingest_document("doc", document)
        calls_after_first = len(embedding_client.calls)

        second = knowledge_store.ingest_document("doc", document)

        assert second.status == "already_ingested"
        assert second.chunks_created == first.chunks_created
        assert store.count() == first.chunks_created
        assert len(embedding_client.calls) == calls_after_first

    def test_force_replaces_chunks(self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, document) -> None:
        knowledge_store.ingest_document("doc", document)
        old_ids = {c.id for c in store.find()}

        result = knowledge_store.ingest_document("doc", "A brand new and much shorter text.", force=True)

        assert result.status == "completed"
        assert result.chunks_created == 1
        remaining = store.find()
        assert len(remaining) == 1
        assert remaining[0].id not in old_ids
        assert remaining[0].content == "A brand new and much shorter text."

    def test_blank_text_fails_and_keeps_existing_chunks(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, document
    ) -> None:
        knowledge_store.ingest_document("doc", document)
        before = store.count()

        result = knowledge_store.ingest_document("doc", "   \n\n ", force=True)

        assert result.status == "failed"
        assert result.error_kind == "extraction_failed"
        assert store.count() == before

    def test_embedding_failures_still_store_chunks(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, document, embedding_client
    ) -> None:
        embedding_client.fail_when.add("gamma")
        result = knowledge_store.ingest_document("doc", document)

        assert result.status == "completed"
        assert result.chunks_failed == 0
        assert store.count() == result.chunks_created
        assert store.find(has_embedding=False)
        assert store.find(has_embedding=True)

    def test_partial_write_failures_are_counted(self, embedder, paragraph) -> None:
        document = "\n\n".join(paragraph(tag, 748) for tag in ("alpha", "beta", "gamma", "delta"))
        flaky = FlakyStore("delta5")
        ks = KnowledgeStore(flaky, embedder, target_size=800, min_size=200, max_size=1200, overlap=100)

        result = ks.ingest_document("doc", document)

        assert result.status == "completed"
        assert result.chunks_failed >= 1
        assert result.chunks_created >= 1
        assert flaky.count() == result.chunks_created

    def test_all_writes_failing_is_a_failure(self, embedder) -> None:
        ks = KnowledgeStore(FlakyStore(""), embedder)

        result = ks.ingest_document("doc", "Some short text.")

        assert result.status == "failed"
        assert result.error_kind == "store_write_failed"
        assert result.chunks_created == 0
        assert result.chunks_failed == 1

    def test_unreachable_store_is_store_failure(self, embedder) -> None:
        broken = BrokenStore()
        broken.broken.add("count")
        ks = KnowledgeStore(broken, embedder)

        result = ks.ingest_document("doc", "Some short text.")

        assert result.status == "failed"
        assert result.error_kind == "store_write_failed"
        assert "connection reset" in result.error

    def test_failed_forced_delete_keeps_existing_chunks(self, embedder, document) -> None:
        broken = BrokenStore()
        ks = KnowledgeStore(broken, embedder, target_size=800, min_size=200, max_size=1200, overlap=100)
        created = ks.ingest_document("doc", document).chunks_created
        before = {c.id for c in broken.find()}

        broken.broken.add("delete_by_source_id")
        result = ks.ingest_document("doc", document, force=True)

        assert result.status == "failed"
        assert result.error_kind == "store_write_failed"
        assert broken.count() == created
        assert {c.id for c in broken.find()} == before

    def test_delete_and_status(self, knowledge_store: KnowledgeStore, document) -> None:
        created = knowledge_store.ingest_document("doc", document).chunks_created

        status = knowledge_store.status("doc")
        assert status.is_ingested
        assert status.chunk_count == created
        assert knowledge_store.ingested_source_ids() == {"doc"}

        assert knowledge_store.delete_by_source_id("doc") == created
        assert knowledge_store.delete_by_source_id("doc") == 0
        assert not knowledge_store.status("doc").is_ingested


class TestMigrateMissingEmbeddings:
    def test_nothing_to_migrate(self, knowledge_store: KnowledgeStore) -> None:
        result = knowledge_store.migrate_missing_embeddings()
        assert (result.migrated, result.failed) == (0, 0)

    def test_unlistable_store_sets_error(self, embedder) -> None:
        broken = BrokenStore()
        broken.broken.add("find")

        result = KnowledgeStore(broken, embedder).migrate_missing_embeddings()

        assert (result.migrated, result.failed) == (0, 0)
        assert "connection reset" in result.error

    def test_backfills_and_counts_failures(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, embedding_client
    ) -> None:
        embedding_client.fail_all = True
        for i in range(5):
            knowledge_store.add_chunk(ChunkDraft(category="general", title=f"t{i}", content=f"body {i}"))
        knowledge_store.add_chunk(ChunkDraft(category="general", title="stubborn", content="never embeds"))
        assert len(store.find(has_embedding=False)) == 6

        embedding_client.fail_all = False
        embedding_client.fail_when.add("stubborn")
        result = knowledge_store.migrate_missing_embeddings()

        assert result.migrated == 5
        assert result.failed == 1
        leftover = store.find(has_embedding=False)
        assert [c.title for c in leftover] == ["stubborn"]

    def test_backfill_bumps_last_updated(
        self, knowledge_store: KnowledgeStore, store: InMemoryChunkStore, embedding_client
    ) -> None:
        embedding_client.fail_all = True
        chunk = knowledge_store.add_chunk(ChunkDraft(category="general", title="t", content="c"))
        embedding_client.fail_all = False

        knowledge_store.migrate_missing_embeddings()

        updated = store.get(chunk.id)
        assert updated.embedding == [1.0, 0.0]
        assert updated.last_updated >= chunk.last_updated
