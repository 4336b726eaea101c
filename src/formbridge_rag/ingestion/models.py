"""Result records returned by ingestion operations.

Ingestion never raises for per-document problems; callers aggregate
these records instead.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

IngestionState = Literal["completed", "already_ingested", "failed"]
FailureKind = Literal["not_found", "extraction_failed", "store_write_failed", "cancelled"]


class IngestionResult(BaseModel):
    """Outcome of ingesting one source document."""

    status: IngestionState
    source_id: str
    chunks_created: int = 0
    chunks_failed: int = 0
    error: str | None = None
    error_kind: FailureKind | None = None

    @classmethod
    def failure(cls, source_id: str, kind: FailureKind, error: str) -> IngestionResult:
        return cls(status="failed", source_id=source_id, error=error, error_kind=kind)


class IngestionStatus(BaseModel):
    """Whether a source document currently has chunks in the store."""

    source_id: str
    is_ingested: bool
    chunk_count: int
    name: str | None = None
    category: str | None = None


class BatchIngestionResult(BaseModel):
    """Aggregate of an ``ingest_all_pending`` run."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    results: list[IngestionResult] = Field(default_factory=list)
    error: str | None = None


class MigrationResult(BaseModel):
    """Counts from an embedding backfill pass."""

    migrated: int = 0
    failed: int = 0
    error: str | None = None
