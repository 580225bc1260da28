"""Abstract base class for document parsers.

A parser turns one file into a :class:`~kbcopilot.models.rag.ParsedDocument`
(title, ordered sections, raw text, flat metadata).  The ingestion service
picks the first registered parser whose :meth:`IDocumentParser.can_parse`
accepts the path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from kbcopilot.models.rag import ParsedDocument


# Concrete implementations: TextParser, MarkdownParser, HtmlParser, PdfParser
# Located in: kbcopilot/providers/parsers/
class IDocumentParser(ABC):
    """Contract for per-format document parsing."""

    #: Lower-case extensions (with leading dot) this parser accepts.
    extensions: tuple[str, ...] = ()

    def can_parse(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    @abstractmethod
    async def parse(self, path: Path) -> ParsedDocument:
        """Parse *path*.

        Raises
        ------
        kbcopilot.utils.errors.DocumentParseError
            If the file cannot be read or decoded.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the parser identifier, e.g. ``"markdown"``."""
