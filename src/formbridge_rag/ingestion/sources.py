"""Source catalogs — the set of documents known to the system."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel

from formbridge_rag.config import settings
from formbridge_rag.errors import SourceNotFoundError
from formbridge_rag.retrieval.models import KNOWN_CATEGORIES

logger = logging.getLogger(__name__)


class SourceDocument(BaseModel):
    """A document that can be ingested.

    Attributes
    ----------
    id:
        Stable identifier; becomes ``source_id`` on every chunk.
    name:
        Human-readable name used in chunk titles and provenance.
    category:
        Category tag copied onto every chunk.
    path:
        Where the raw bytes live.
    """

    id: str
    name: str
    category: str
    path: str


class SourceCatalogBase(ABC):
    """Lists source documents and reads their bytes."""

    @abstractmethod
    def list_sources(self) -> list[SourceDocument]:
        ...

    @abstractmethod
    def read_bytes(self, source: SourceDocument) -> bytes:
        ...

    def get(self, source_id: str) -> SourceDocument | None:
        for source in self.list_sources():
            if source.id == source_id:
                return source
        return None

    def require(self, source_id: str) -> SourceDocument:
        """Like :meth:`get` but raises :class:`SourceNotFoundError`."""
        source = self.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source


class DirectorySourceCatalog(SourceCatalogBase):
    """Documents stored as files under a root directory.

    ``<root>/government/ontario-works.pdf`` becomes the source
    ``government/ontario-works`` in category ``government``.  Files outside
    a known category folder get *default_category*.

    Parameters
    ----------
    root:
        Directory to scan.
    glob:
        File-matching pattern, relative to *root*.
    default_category:
        Category for files not under a known category folder.
    """

    def __init__(
        self,
        root: str | Path = settings.source_directory,
        *,
        glob: str = settings.source_glob,
        default_category: str = settings.default_category,
    ) -> None:
        self.root = Path(root)
        self.glob = glob
        self.default_category = default_category

    def list_sources(self) -> list[SourceDocument]:
        if not self.root.is_dir():
            logger.warning("Source directory %s does not exist", self.root)
            return []
        sources = []
        for path in sorted(p for p in self.root.glob(self.glob) if p.is_file()):
            relative = path.relative_to(self.root)
            head = relative.parts[0] if len(relative.parts) > 1 else ""
            sources.append(
                SourceDocument(
                    id=relative.with_suffix("").as_posix(),
                    name=path.stem,
                    category=head if head in KNOWN_CATEGORIES else self.default_category,
                    path=str(path),
                )
            )
        return sources

    def read_bytes(self, source: SourceDocument) -> bytes:
        return Path(source.path).read_bytes()


class StaticSourceCatalog(SourceCatalogBase):
    """Fixed in-memory catalog, e.g. documents uploaded through another service."""

    def __init__(self, documents: dict[str, tuple[SourceDocument, bytes]] | None = None) -> None:
        self._documents: dict[str, tuple[SourceDocument, bytes]] = dict(documents or {})

    def add(self, source: SourceDocument, data: bytes) -> None:
        self._documents[source.id] = (source, data)

    def list_sources(self) -> list[SourceDocument]:
        return [source for source, _ in self._documents.values()]

    def read_bytes(self, source: SourceDocument) -> bytes:
        try:
            return self._documents[source.id][1]
        except KeyError:
            raise SourceNotFoundError(source.id) from None
