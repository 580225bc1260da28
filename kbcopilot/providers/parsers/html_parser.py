"""HTML parser built on BeautifulSoup.

Scripts, styles and ``noscript`` blocks are removed first.  Each ``h1`` to
``h6`` heading starts a section whose content is the text of the sibling
elements up to the next heading.  A page without headings becomes a single
``Content`` section.  ``<meta name|property=... content=...>`` tags are
copied into the document metadata.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from bs4 import BeautifulSoup, Tag

from kbcopilot.interfaces.document_parser import IDocumentParser
from kbcopilot.models.rag import ParsedDocument, ParsedSection
from kbcopilot.providers.parsers.base import read_text_file
from kbcopilot.utils.text import normalize_text

logger = structlog.get_logger(logger_name=__name__)

_HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


class HtmlParser(IDocumentParser):
    """Parser for ``.html`` and ``.htm`` files."""

    extensions = (".html", ".htm")

    async def parse(self, path: Path) -> ParsedDocument:
        markup = await read_text_file(path, self.get_provider_name())
        soup = BeautifulSoup(markup, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        title = self._extract_title(soup) or path.stem
        body = soup.body or soup
        raw = normalize_text(body.get_text("\n", strip=True))

        sections = self._extract_sections(body)
        if not sections and raw:
            sections = [ParsedSection(title="Content", content=raw, level=1)]

        metadata = {"file_type": "html", "character_count": str(len(raw))}
        for meta in soup.find_all("meta"):
            key = meta.get("name") or meta.get("property")
            value = meta.get("content")
            if key and value:
                metadata[str(key)] = str(value)

        logger.debug("html_parsed", path=str(path), sections=len(sections))
        return ParsedDocument(title=title, sections=sections, raw_text=raw, metadata=metadata)

    @staticmethod
    def _extract_title(soup: BeautifulSoup) -> str | None:
        for name in ("title", "h1"):
            tag = soup.find(name)
            if tag is not None:
                text = tag.get_text(strip=True)
                if text:
                    return text
        return None

    @staticmethod
    def _extract_sections(body: Tag) -> list[ParsedSection]:
        sections: list[ParsedSection] = []
        for heading in body.find_all(_HEADINGS):
            parts: list[str] = []
            for sibling in heading.find_next_siblings():
                if sibling.name in _HEADINGS:
                    break
                text = sibling.get_text(" ", strip=True)
                if text:
                    parts.append(text)
            content = normalize_text("\n\n".join(parts))
            if content:
                sections.append(
                    ParsedSection(
                        title=heading.get_text(strip=True),
                        content=content,
                        level=int(heading.name[1]),
                    )
                )
        return sections

    def get_provider_name(self) -> str:
        return "html"
