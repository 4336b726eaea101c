"""FastAPI application exposing ingestion and retrieval as a REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from formbridge_rag.config import configure_logging
from formbridge_rag.errors import InputValidationError, StoreError
from formbridge_rag.ingestion.keywords import chunk_keywords
from formbridge_rag.ingestion.models import BatchIngestionResult, IngestionResult, IngestionStatus
from formbridge_rag.retrieval.models import ChunkDraft
from formbridge_rag.serving.services import Services, build_services

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class DeleteChunksResponse(BaseModel):
    source_id: str
    deleted_count: int
    message: str


class SearchHit(BaseModel):
    id: str
    title: str
    content: str
    category: str
    score: float


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit]


class ContextResponse(BaseModel):
    query: str
    context: str


class MigrateResponse(BaseModel):
    message: str
    migrated: int
    failed: int


class ChunkSummary(BaseModel):
    id: str
    title: str
    category: str
    keywords: list[str] = []
    has_embedding: bool
    last_updated: datetime | None = None


class ChunkListResponse(BaseModel):
    documents: list[ChunkSummary]


class AddChunkRequest(BaseModel):
    """A hand-written knowledge entry."""

    category: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    keywords: list[str] = []
    source_id: str | None = None
    source: str | None = None


class AddChunkResponse(BaseModel):
    message: str
    document: ChunkSummary


def get_services(request: Request) -> Services:
    return request.app.state.services


# ── Routes ────────────────────────────────────────────────────────────
health_router = APIRouter()
ingestion_router = APIRouter(prefix="/ingestion", tags=["ingestion"])
rag_router = APIRouter(prefix="/rag", tags=["rag"])


@health_router.get("/health")
def health(services: Services = Depends(get_services)):
    """Readiness check; 503 while the chunk store is unreachable."""
    if not services.store.health_check():
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "ok"}


# Registered before the ``{source_id:path}`` routes so "batch" is not read as an id.
@ingestion_router.post("/batch", response_model=BatchIngestionResult)
def ingest_batch(services: Services = Depends(get_services)) -> BatchIngestionResult:
    """Ingest every source document that has no chunks yet."""
    logger.info("Batch ingestion requested")
    return services.orchestrator.ingest_all_pending()


@ingestion_router.post("/{source_id:path}", response_model=IngestionResult)
def ingest(source_id: str, force: bool = False, services: Services = Depends(get_services)):
    """Ingest one source document; ``force=true`` replaces existing chunks."""
    logger.info("Ingestion requested for %s%s", source_id, " (force)" if force else "")
    result = services.orchestrator.ingest(source_id, force=force)
    if result.status == "failed":
        status_code = 404 if result.error_kind == "not_found" else 400
        return JSONResponse(status_code=status_code, content=result.model_dump())
    return result


@ingestion_router.get("/{source_id:path}/status", response_model=IngestionStatus)
def ingestion_status(source_id: str, services: Services = Depends(get_services)) -> IngestionStatus:
    return services.orchestrator.status(source_id)


@ingestion_router.delete("/{source_id:path}", response_model=DeleteChunksResponse)
def delete_chunks(source_id: str, services: Services = Depends(get_services)) -> DeleteChunksResponse:
    deleted = services.knowledge_store.delete_by_source_id(source_id)
    logger.info("Deleted %d chunks for %s", deleted, source_id)
    return DeleteChunksResponse(source_id=source_id, deleted_count=deleted, message=f"Deleted {deleted} chunks")


@rag_router.get("/search", response_model=SearchResponse)
def search(
    q: str = "",
    category: str | None = None,
    source_id: str | None = None,
    limit: int | None = None,
    services: Services = Depends(get_services),
) -> SearchResponse:
    """Rank knowledge chunks for ``q``."""
    hits = services.retriever.search(q, category=category, source_id=source_id, limit=limit)
    return SearchResponse(
        query=q,
        results=[
            SearchHit(
                id=hit.chunk.id,
                title=hit.chunk.title,
                content=hit.chunk.content,
                category=hit.chunk.category,
                score=hit.score,
            )
            for hit in hits
        ],
    )


@rag_router.get("/context", response_model=ContextResponse)
def context(
    q: str = "",
    category: str | None = None,
    source_id: str | None = None,
    services: Services = Depends(get_services),
) -> ContextResponse:
    """Prompt-ready context for ``q``."""
    return ContextResponse(query=q, context=services.retriever.context(q, category=category, source_id=source_id))


@rag_router.post("/migrate", response_model=MigrateResponse)
def migrate(services: Services = Depends(get_services)) -> MigrateResponse:
    """Backfill embeddings for chunks stored without one."""
    logger.info("Starting embedding migration")
    result = services.knowledge_store.migrate_missing_embeddings()
    logger.info("Embedding migration: %d migrated, %d failed", result.migrated, result.failed)
    return MigrateResponse(message="Migration complete", migrated=result.migrated, failed=result.failed)


@rag_router.get("/docs", response_model=ChunkListResponse)
def list_docs(category: str | None = None, services: Services = Depends(get_services)) -> ChunkListResponse:
    chunks = services.knowledge_store.list_chunks(category)
    return ChunkListResponse(
        documents=[
            ChunkSummary(
                id=c.id,
                title=c.title,
                category=c.category,
                keywords=c.keywords,
                has_embedding=c.has_embedding,
                last_updated=c.last_updated,
            )
            for c in chunks
        ]
    )


@rag_router.post("/docs", response_model=AddChunkResponse, status_code=201)
def add_doc(request: AddChunkRequest, services: Services = Depends(get_services)) -> AddChunkResponse:
    """Store a hand-written knowledge entry as a single chunk."""
    draft = ChunkDraft(
        category=request.category,
        source_id=request.source_id,
        title=request.title,
        content=request.content,
        keywords=request.keywords or chunk_keywords(request.content),
        source=request.source,
    )
    chunk = services.knowledge_store.add_chunk(draft)
    return AddChunkResponse(
        message="Document added",
        document=ChunkSummary(
            id=chunk.id,
            title=chunk.title,
            category=chunk.category,
            keywords=chunk.keywords,
            has_embedding=chunk.has_embedding,
            last_updated=chunk.last_updated,
        ),
    )


@rag_router.delete("/docs/{chunk_id}")
def delete_doc(chunk_id: str, services: Services = Depends(get_services)):
    if not services.knowledge_store.delete_chunk(chunk_id):
        return JSONResponse(status_code=404, content={"error": "Document not found"})
    return {"message": "Document deleted"}


# ── App factory ───────────────────────────────────────────────────────
def create_app(services: Services | None = None) -> FastAPI:
    """Build the API.

    With *services* given (tests), they are used as-is.  Otherwise the
    real clients are constructed when the app starts and closed when it
    stops.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return
        configure_logging()
        app.state.services = build_services()
        try:
            yield
        finally:
            app.state.services.close()

    app = FastAPI(
        title="FormBridge Knowledge API",
        version="0.1.0",
        description="Document ingestion and hybrid retrieval for form assistance.",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    @app.exception_handler(InputValidationError)
    async def _validation_error(request: Request, exc: InputValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Chunk store failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"error": str(exc)})

    app.include_router(health_router)
    app.include_router(ingestion_router)
    app.include_router(rag_router)
    return app


app = create_app()
