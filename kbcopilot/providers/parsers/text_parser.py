"""Plain-text parser.

Plain text has no markup, so structure is guessed from line shapes:

* the first non-empty line is the title when it is short and looks like one
  (mentions "title", is written in capitals, or ends with a colon);
* a line opens a new section when it starts with ``Chapter``/``Section``/
  ``Part``, is a short all-caps line, or is a short line ending in a colon.

Text before the first heading lands in an ``Introduction`` section.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from kbcopilot.interfaces.document_parser import IDocumentParser
from kbcopilot.models.rag import ParsedDocument, ParsedSection
from kbcopilot.providers.parsers.base import read_text_file, text_metadata
from kbcopilot.utils.text import normalize_text

logger = structlog.get_logger(logger_name=__name__)

_TITLE_MAX = 100
_HEADER_MAX = 80
_HEADER_PREFIXES = {"chapter ": 1, "section ": 2, "part ": 3}
_DEFAULT_SECTION = "Introduction"


def _is_upper_line(line: str) -> bool:
    letters = [c for c in line if c.isalpha()]
    return bool(letters) and all(c.isupper() for c in letters)


def _title_from(line: str) -> str | None:
    if len(line) >= _TITLE_MAX:
        return None
    if "title" in line.lower() or _is_upper_line(line) or line.endswith(":"):
        return line.rstrip(":").strip() or None
    return None


def _header_level(line: str) -> int | None:
    """Return the section level when *line* looks like a heading."""
    lowered = line.lower()
    for prefix, level in _HEADER_PREFIXES.items():
        if lowered.startswith(prefix):
            return level
    if len(line) < _HEADER_MAX and _is_upper_line(line):
        return 1
    if len(line) < _HEADER_MAX and line.endswith(":"):
        return 2
    return None


class TextParser(IDocumentParser):
    """Parser for ``.txt``/``.text`` files and extension-less files."""

    extensions = (".txt", ".text")

    def can_parse(self, path: Path) -> bool:
        return path.suffix == "" or super().can_parse(path)

    async def parse(self, path: Path) -> ParsedDocument:
        raw = normalize_text(await read_text_file(path, self.get_provider_name()))
        lines = [line.strip() for line in raw.split("\n")]

        first = next((line for line in lines if line), "")
        detected = _title_from(first)
        title = detected or path.stem

        sections: list[ParsedSection] = []
        current_title, current_level = _DEFAULT_SECTION, 2
        buffer: list[str] = []

        def flush() -> None:
            content = normalize_text("\n".join(buffer))
            if content:
                sections.append(
                    ParsedSection(title=current_title, content=content, level=current_level)
                )

        skipped_title = False
        for line in lines:
            if detected and not skipped_title and line:
                skipped_title = True
                continue
            level = _header_level(line) if line else None
            if level is not None:
                flush()
                buffer = []
                current_title, current_level = line.rstrip(":").strip(), level
                continue
            buffer.append(line)
        flush()

        logger.debug("text_parsed", path=str(path), sections=len(sections))
        return ParsedDocument(
            title=title,
            sections=sections,
            raw_text=raw,
            metadata=text_metadata("text", raw),
        )

    def get_provider_name(self) -> str:
        return "text"
