"""PDF parser using PyMuPDF (``fitz``).

Text is extracted page by page; each page with text becomes a section
titled ``Page {n}`` (1-based).  The title comes from the document's
metadata, then from a short first line on page one, then from the file
name.  Extraction runs in a worker thread because PyMuPDF is synchronous.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from kbcopilot.interfaces.document_parser import IDocumentParser
from kbcopilot.models.rag import ParsedDocument, ParsedSection
from kbcopilot.utils.errors import DocumentParseError
from kbcopilot.utils.text import normalize_text

logger = structlog.get_logger(logger_name=__name__)

_TITLE_MAX = 100


class PdfParser(IDocumentParser):
    """Parser for ``.pdf`` files."""

    extensions = (".pdf",)

    async def parse(self, path: Path) -> ParsedDocument:
        try:
            pages, info = await asyncio.to_thread(self._extract_pages, path)
        except (fitz.FileDataError, RuntimeError, OSError) as exc:
            raise DocumentParseError(
                message=f"Cannot read PDF {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        sections = [
            ParsedSection(title=f"Page {number}", content=text, level=1)
            for number, text in pages
        ]
        raw = "\n\n".join(text for _, text in pages)

        title = (info.get("title") or "").strip()
        if not title and pages and pages[0][0] == 1:
            first_line = pages[0][1].split("\n", 1)[0].strip()
            if 0 < len(first_line) < _TITLE_MAX:
                title = first_line

        metadata = {"file_type": "pdf", "page_count": str(info.get("page_count", len(pages)))}
        if info.get("author"):
            metadata["author"] = info["author"]

        if not pages:
            logger.warning("pdf_no_text_extracted", path=str(path))
        logger.debug("pdf_parsed", path=str(path), pages=len(pages))
        return ParsedDocument(
            title=title or path.stem,
            sections=sections,
            raw_text=raw,
            metadata=metadata,
        )

    @staticmethod
    def _extract_pages(path: Path) -> tuple[list[tuple[int, str]], dict[str, str]]:
        """Return ``(page_number, text)`` for pages with text, plus doc info."""
        doc = fitz.open(str(path))
        pages: list[tuple[int, str]] = []
        try:
            meta = doc.metadata or {}
            info = {
                "title": meta.get("title") or "",
                "author": meta.get("author") or "",
                "page_count": str(doc.page_count),
            }
            for page_num in range(len(doc)):
                text = normalize_text(doc[page_num].get_text("text"))
                if text:
                    pages.append((page_num + 1, text))
        finally:
            doc.close()
        return pages, info

    def get_provider_name(self) -> str:
        return "pdf"
