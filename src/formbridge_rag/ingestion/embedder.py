"""Embedding clients and the bounded, timeout-guarded wrapper around them.

Embedding is best-effort everywhere in this package: a failure or a
timeout degrades one chunk (or one query) to text-only search.
:class:`SafeEmbedder` turns every call into a two-outcome value,
:class:`Embedded` or :class:`NotEmbedded`, that callers branch on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from formbridge_rag.config import settings
from formbridge_rag.errors import EmbeddingFailedError

if TYPE_CHECKING:
    from langchain_huggingface import HuggingFaceEmbeddings

logger = logging.getLogger(__name__)


class EmbeddingClientBase(ABC):
    """Text → fixed-dimension vector.

    Implementations raise :class:`EmbeddingFailedError` (or let any
    exception escape) on failure; :class:`SafeEmbedder` handles both.
    """

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        ...


class HuggingFaceEmbeddingClient(EmbeddingClientBase):
    """Sentence-transformer embeddings via ``langchain-huggingface``."""

    def __init__(self, model_name: str = settings.embedding_model) -> None:
        from langchain_huggingface import HuggingFaceEmbeddings

        self.model_name = model_name
        self._model: HuggingFaceEmbeddings = HuggingFaceEmbeddings(model_name=model_name)

    def embed(self, text: str) -> list[float]:
        try:
            return [float(x) for x in self._model.embed_query(text)]
        except Exception as exc:
            raise EmbeddingFailedError(f"{self.model_name} could not embed text: {exc}") from exc


# ---------------------------------------------------------------------------
# Two-outcome result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Embedded:
    """The client produced a vector of the expected dimension."""

    vector: list[float]


@dataclass(frozen=True)
class NotEmbedded:
    """No usable vector; *reason* says why (error text or ``"timeout"``)."""

    reason: str


EmbeddingOutcome = Union[Embedded, NotEmbedded]


class SafeEmbedder:
    """Runs an :class:`EmbeddingClientBase` with bounded fan-out and timeouts.

    Parameters
    ----------
    client:
        The underlying embedding client.
    dimension:
        Expected vector length; vectors of any other length are rejected.
    max_concurrency:
        Maximum embedding calls in flight.
    timeout:
        Seconds to wait for a single call before giving up on it.
    """

    def __init__(
        self,
        client: EmbeddingClientBase,
        *,
        dimension: int = settings.embedding_dimension,
        max_concurrency: int = settings.embedding_concurrency,
        timeout: float = settings.embedding_timeout_seconds,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.client = client
        self.dimension = dimension
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix="embed")

    def embed(self, text: str) -> EmbeddingOutcome:
        """Embed one text, never raising."""
        return self._collect(self._pool.submit(self.client.embed, text))

    def embed_many(self, texts: list[str]) -> list[EmbeddingOutcome]:
        """Embed *texts* concurrently; outcomes are returned in input order."""
        futures = [self._pool.submit(self.client.embed, text) for text in texts]
        return [self._collect(future) for future in futures]

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    # -- internals ------------------------------------------------------------

    def _collect(self, future: Future[list[float]]) -> EmbeddingOutcome:
        try:
            vector = future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Embedding call timed out after %.1fs", self.timeout)
            return NotEmbedded(reason="timeout")
        except Exception as exc:
            logger.warning("Embedding call failed: %s", exc)
            return NotEmbedded(reason=str(exc) or type(exc).__name__)

        if len(vector) != self.dimension:
            logger.warning("Embedding has dimension %d, expected %d", len(vector), self.dimension)
            return NotEmbedded(reason=f"dimension {len(vector)} != {self.dimension}")
        return Embedded(vector=list(vector))
