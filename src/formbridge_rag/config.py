"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Chunking
    chunk_target_size: int = Field(default=800, description="Preferred chunk length in characters")
    chunk_min_size: int = Field(default=200, description="Smallest chunk emitted (except short documents)")
    chunk_max_size: int = Field(default=1200, description="Hard upper bound on chunk length")
    chunk_overlap: int = Field(default=100, description="Characters carried over between chunks")

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = 384
    embedding_concurrency: int = Field(default=4, description="Embedding calls in flight per document")
    embedding_timeout_seconds: float = 30.0

    # Extraction
    extraction_timeout_seconds: float = 120.0

    # Persistent store
    store_backend: str = Field(default="chroma", description="'chroma', or 'memory' for a single-process server")
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "formbridge_knowledge"

    # Source documents
    source_directory: str = "data/forms"
    source_glob: str = "**/*.pdf"
    default_category: str = "general"

    # Retrieval
    search_default_limit: int = 3

    # Logging
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever defaults are needed.
settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install the root logging handler at the configured level."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
