"""Unit tests for the embedding wrapper."""

from __future__ import annotations

import pytest

from formbridge_rag.ingestion.embedder import Embedded, NotEmbedded, SafeEmbedder


class TestSafeEmbedder:
    def test_success_is_embedded(self, embedder: SafeEmbedder) -> None:
        assert embedder.embed("hello") == Embedded(vector=[1.0, 0.0])

    def test_client_error_is_not_embedded(self, embedder: SafeEmbedder, embedding_client) -> None:
        embedding_client.fail_all = True
        outcome = embedder.embed("hello")
        assert isinstance(outcome, NotEmbedded)
        assert "unavailable" in outcome.reason

    def test_unexpected_exception_is_not_embedded(self, fake_embedding_client_cls) -> None:
        class Exploding(fake_embedding_client_cls):
            def embed(self, text: str) -> list[float]:
                raise RuntimeError("boom")

        safe = SafeEmbedder(Exploding(), dimension=2)
        try:
            assert safe.embed("x") == NotEmbedded(reason="boom")
        finally:
            safe.close()

    def test_wrong_dimension_is_rejected(self, fake_embedding_client_cls) -> None:
        safe = SafeEmbedder(fake_embedding_client_cls(default=[1.0, 2.0, 3.0]), dimension=2)
        try:
            outcome = safe.embed("x")
        finally:
            safe.close()
        assert isinstance(outcome, NotEmbedded)
        assert "dimension" in outcome.reason

    def test_timeout_degrades_to_not_embedded(self, fake_embedding_client_cls) -> None:
        safe = SafeEmbedder(fake_embedding_client_cls(default=[1.0, 0.0], delay=0.5), dimension=2, timeout=0.05)
        try:
            assert safe.embed("slow") == NotEmbedded(reason="timeout")
        finally:
            safe.close()

    def test_embed_many_keeps_input_order(self, fake_embedding_client_cls) -> None:
        client = fake_embedding_client_cls({"a": [1.0, 0.0], "b": [0.0, 1.0]})
        client.fail_when.add("c")
        safe = SafeEmbedder(client, dimension=2)
        try:
            outcomes = safe.embed_many(["a", "b", "c"])
        finally:
            safe.close()
        assert outcomes[0] == Embedded(vector=[1.0, 0.0])
        assert outcomes[1] == Embedded(vector=[0.0, 1.0])
        assert isinstance(outcomes[2], NotEmbedded)

    def test_embed_many_bounds_concurrency(self, fake_embedding_client_cls) -> None:
        client = fake_embedding_client_cls(default=[1.0, 0.0], delay=0.02)
        safe = SafeEmbedder(client, dimension=2, max_concurrency=4)
        try:
            outcomes = safe.embed_many([f"text {i}" for i in range(16)])
        finally:
            safe.close()
        assert all(isinstance(o, Embedded) for o in outcomes)
        assert 1 <= client.max_in_flight <= 4

    def test_rejects_zero_concurrency(self, embedding_client) -> None:
        with pytest.raises(ValueError):
            SafeEmbedder(embedding_client, dimension=2, max_concurrency=0)
