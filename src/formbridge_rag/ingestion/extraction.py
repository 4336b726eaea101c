"""Extraction clients — document bytes → plain text."""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from pypdf import PdfReader

from formbridge_rag.errors import ExtractionFailedError

logger = logging.getLogger(__name__)

NO_TEXT_MESSAGE = "No text could be extracted from document (may be scanned/image-based)"


@dataclass(frozen=True)
class ExtractedText:
    """Plain text of a document and the number of pages it spans."""

    text: str
    page_count: int = 1


class ExtractionClientBase(ABC):
    """Converts raw document bytes into text.

    Implementations raise :class:`ExtractionFailedError` for unreadable
    input, including documents that yield no text at all.
    """

    @abstractmethod
    def extract(self, data: bytes) -> ExtractedText:
        ...


class PdfExtractionClient(ExtractionClientBase):
    """Text layer extraction with ``pypdf`` (no OCR)."""

    def extract(self, data: bytes) -> ExtractedText:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as exc:
            # pypdf reports corrupt structure with AttributeError, TypeError and others.
            raise ExtractionFailedError(f"Unreadable PDF: {exc}") from exc

        text = "\n\n".join(p.strip() for p in pages if p.strip())
        if not text:
            raise ExtractionFailedError(NO_TEXT_MESSAGE)
        logger.debug("Extracted %d characters from %d pages", len(text), len(pages))
        return ExtractedText(text=text, page_count=max(1, len(pages)))


class PlainTextExtractionClient(ExtractionClientBase):
    """UTF-8 text / Markdown sources; form feeds mark page breaks."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def extract(self, data: bytes) -> ExtractedText:
        try:
            text = data.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise ExtractionFailedError(f"Not valid {self.encoding} text: {exc}") from exc
        if not text.strip():
            raise ExtractionFailedError(NO_TEXT_MESSAGE)
        return ExtractedText(text=text, page_count=text.count("\f") + 1)


class AutoExtractionClient(ExtractionClientBase):
    """Picks a PDF or plain-text extractor from the content itself.

    PDF files always start with the ``%PDF`` magic number; anything else
    is treated as text.
    """

    def __init__(
        self,
        pdf: ExtractionClientBase | None = None,
        text: ExtractionClientBase | None = None,
    ) -> None:
        self._pdf = pdf or PdfExtractionClient()
        self._text = text or PlainTextExtractionClient()

    def extract(self, data: bytes) -> ExtractedText:
        if data.lstrip()[:4] == b"%PDF":
            return self._pdf.extract(data)
        return self._text.extract(data)
