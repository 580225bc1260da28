"""Character-window chunking with boundary snapping.

Splits parsed documents into overlapping :class:`~kbcopilot.models.rag.ChunkSpan`
windows sized in **characters**:

1. **Fixed stride** -- a window of ``chunk_size`` characters advances by
   ``chunk_size - chunk_overlap``, so consecutive chunks share the overlap
   and a sentence cut at one boundary is whole in at least one chunk.

2. **Boundary snapping** -- when a window does not reach the end of the
   text, its end moves back (at most ``boundary_tolerance`` characters) to
   the nearest paragraph break, then line break, then sentence end, then
   space.  The next window starts ``chunk_overlap`` characters before the
   snapped end.

Text without any delimiter is cut at exact multiples of the stride, giving
``ceil((L - O) / (C - O))`` chunks for a text of ``L > C`` characters.

Each parser section is chunked on its own and every chunk carries its
section title; the chunk index runs over the whole document.
"""

from __future__ import annotations

import structlog

from kbcopilot.models.rag import Chunk, ChunkingOptions, ChunkSpan, ParsedDocument
from kbcopilot.utils.errors import ConfigurationError
from kbcopilot.utils.text import normalize_text

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_SECTION = "Content"

# Checked in order; the cut lands right after the delimiter.
_DELIMITERS = ("\n\n", "\n", ". ", "! ", "? ", " ")


class ChunkingEngine:
    """Splits documents into overlapping character windows.

    Parameters
    ----------
    options:
        Window settings.  ``chunk_size`` must be positive and larger than
        ``chunk_overlap``; ``chunk_overlap`` must not be negative.

    Raises
    ------
    ConfigurationError
        If the window settings cannot make forward progress.
    """

    def __init__(self, options: ChunkingOptions | None = None) -> None:
        opts = options or ChunkingOptions()
        if opts.chunk_size <= 0:
            raise ConfigurationError(message=f"chunk_size must be positive, got {opts.chunk_size}")
        if opts.chunk_overlap < 0:
            raise ConfigurationError(message=f"chunk_overlap must not be negative, got {opts.chunk_overlap}")
        if opts.chunk_size <= opts.chunk_overlap:
            raise ConfigurationError(
                message=(
                    f"chunk_size ({opts.chunk_size}) must be greater than "
                    f"chunk_overlap ({opts.chunk_overlap})"
                )
            )
        self._options = opts
        self._step = opts.chunk_size - opts.chunk_overlap
        # Snapping further back than one stride could stall the window.
        self._tolerance = max(0, min(opts.boundary_tolerance, self._step - 1))

    @property
    def options(self) -> ChunkingOptions:
        return self._options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split_text(self, text: str) -> list[str]:
        """Split one block of text into windows.  Empty text gives ``[]``."""
        text = normalize_text(text)
        if not text:
            return []

        size, overlap = self._options.chunk_size, self._options.chunk_overlap
        if len(text) <= size:
            return [text]

        pieces: list[str] = []
        start = 0
        while True:
            end = start + size
            if end >= len(text):
                piece = text[start:].strip()
                if piece:
                    pieces.append(piece)
                break
            end = self._snap(text, start, end)
            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)
            start = end - overlap
        return pieces

    def chunk(self, parsed: ParsedDocument) -> list[ChunkSpan]:
        """Chunk every section of *parsed* in document order."""
        sections = [(s.title or _DEFAULT_SECTION, s.content, s.level) for s in parsed.sections]
        if not sections:
            sections = [(_DEFAULT_SECTION, parsed.raw_text, 1)]

        raw: list[tuple[str, str, int]] = []
        for title, content, level in sections:
            raw.extend((piece, title, level) for piece in self.split_text(content))

        total = len(raw)
        spans = [
            ChunkSpan(text=text, section=title, index=i, total_chunks=total, section_level=level)
            for i, (text, title, level) in enumerate(raw)
        ]
        logger.debug("chunking_complete", title=parsed.title, sections=len(sections), chunks=total)
        return spans

    def build_chunks(self, parsed: ParsedDocument, source_path: str) -> list[Chunk]:
        """Chunk *parsed* and wrap each span as a :class:`Chunk` entity."""
        chunks: list[Chunk] = []
        for span in self.chunk(parsed):
            metadata = dict(parsed.metadata)
            metadata.update(
                {
                    "chunk_index": str(span.index),
                    "total_chunks": str(span.total_chunks),
                    "section_level": str(span.section_level),
                }
            )
            chunks.append(
                Chunk.create(
                    text=span.text,
                    title=parsed.title,
                    section=span.section,
                    source_path=source_path,
                    metadata=metadata,
                )
            )
        return chunks

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _snap(self, text: str, start: int, end: int) -> int:
        """Move *end* back onto the best delimiter within the tolerance."""
        if self._tolerance == 0:
            return end
        # Never snap into the overlap of the previous window.
        floor = max(end - self._tolerance, start + self._options.chunk_overlap + 1)
        for delimiter in _DELIMITERS:
            idx = text.rfind(delimiter, floor, end)
            if idx != -1:
                return idx + len(delimiter)
        return end
