"""Markdown parser: one section per ATX heading (``#`` .. ``######``).

Headings inside fenced code blocks are left alone.  The document title is
the first heading, falling back to the file name.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from kbcopilot.interfaces.document_parser import IDocumentParser
from kbcopilot.models.rag import ParsedDocument, ParsedSection
from kbcopilot.providers.parsers.base import read_text_file, text_metadata
from kbcopilot.utils.text import normalize_text

logger = structlog.get_logger(logger_name=__name__)

_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")


class MarkdownParser(IDocumentParser):
    """Parser for ``.md`` and ``.markdown`` files."""

    extensions = (".md", ".markdown")

    async def parse(self, path: Path) -> ParsedDocument:
        raw = normalize_text(await read_text_file(path, self.get_provider_name()))

        sections: list[ParsedSection] = []
        title: str | None = None
        current_title, current_level = "Introduction", 1
        buffer: list[str] = []
        in_fence = False

        for line in raw.split("\n"):
            if _FENCE.match(line):
                in_fence = not in_fence
                buffer.append(line)
                continue
            match = None if in_fence else _HEADING.match(line)
            if match is None:
                buffer.append(line)
                continue
            content = normalize_text("\n".join(buffer))
            if content:
                sections.append(ParsedSection(title=current_title, content=content, level=current_level))
            buffer = []
            current_title, current_level = match.group(2), len(match.group(1))
            if title is None:
                title = current_title

        content = normalize_text("\n".join(buffer))
        if content:
            sections.append(ParsedSection(title=current_title, content=content, level=current_level))

        logger.debug("markdown_parsed", path=str(path), sections=len(sections))
        return ParsedDocument(
            title=title or path.stem,
            sections=sections,
            raw_text=raw,
            metadata=text_metadata("markdown", raw),
        )

    def get_provider_name(self) -> str:
        return "markdown"
