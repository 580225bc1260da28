"""Extension-based lookup over the registered document parsers."""

from __future__ import annotations

from pathlib import Path

from kbcopilot.interfaces.document_parser import IDocumentParser
from kbcopilot.providers.parsers.html_parser import HtmlParser
from kbcopilot.providers.parsers.markdown_parser import MarkdownParser
from kbcopilot.providers.parsers.pdf_parser import PdfParser
from kbcopilot.providers.parsers.text_parser import TextParser
from kbcopilot.utils.errors import UnsupportedOperationError


class ParserRegistry:
    """Ordered collection of parsers; the first one that accepts a path wins."""

    def __init__(self, parsers: list[IDocumentParser] | None = None) -> None:
        self._parsers: list[IDocumentParser] = list(parsers or [])

    @classmethod
    def default(cls) -> ParserRegistry:
        """Registry with the text, markdown, HTML and PDF parsers."""
        return cls([TextParser(), MarkdownParser(), HtmlParser(), PdfParser()])

    def register(self, parser: IDocumentParser) -> None:
        self._parsers.append(parser)

    def supports(self, path: Path) -> bool:
        return any(p.can_parse(path) for p in self._parsers)

    def parser_for(self, path: Path) -> IDocumentParser:
        for parser in self._parsers:
            if parser.can_parse(path):
                return parser
        raise UnsupportedOperationError(
            message=f"Unsupported file type: {path.suffix or '<none>'}",
            provider_name="parsers",
        )

    @property
    def supported_extensions(self) -> list[str]:
        return sorted({ext for p in self._parsers for ext in p.extensions})
