"""Exception hierarchy for the knowledge base.

Document- and batch-level operations report failures through result
records; these exceptions travel between collaborators and the code that
turns them into those records.  Only :class:`InputValidationError` is
meant to reach callers of the retrieval API directly.
"""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for every error raised by this package."""


class SourceNotFoundError(KnowledgeBaseError):
    """The requested source document is not in the catalog."""

    def __init__(self, source_id: str) -> None:
        super().__init__(f"Source document not found: {source_id}")
        self.source_id = source_id


class ExtractionFailedError(KnowledgeBaseError):
    """Text could not be extracted (unreadable, scanned, or timed out)."""


class EmbeddingFailedError(KnowledgeBaseError):
    """The embedding client could not produce a usable vector."""


class StoreError(KnowledgeBaseError):
    """The persistent store failed or could not be reached."""


class StoreWriteError(StoreError):
    """A single record could not be written to the persistent store."""


class InputValidationError(KnowledgeBaseError, ValueError):
    """Malformed caller input, e.g. an empty search query."""
