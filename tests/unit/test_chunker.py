"""Unit tests for ChunkingEngine - window sizes, overlap, snapping, sections."""

from __future__ import annotations

import pytest

from kbcopilot.models.rag import ChunkingOptions, ParsedDocument, ParsedSection
from kbcopilot.services.ingestion.chunker import ChunkingEngine
from kbcopilot.utils.errors import ConfigurationError
from kbcopilot.utils.text import content_hash


def _make_engine(chunk_size: int = 100, chunk_overlap: int = 20, boundary_tolerance: int = 100) -> ChunkingEngine:
    return ChunkingEngine(
        ChunkingOptions(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            boundary_tolerance=boundary_tolerance,
        )
    )


def _hex_text(length: int) -> str:
    """Lowercase hex with no delimiter the engine could snap to."""
    out = ""
    counter = 0
    while len(out) < length:
        out += content_hash(str(counter))
        counter += 1
    return out[:length]


class TestOptionValidation:
    """Window settings that cannot make progress are rejected."""

    def test_size_must_exceed_overlap(self) -> None:
        with pytest.raises(ConfigurationError):
            _make_engine(chunk_size=100, chunk_overlap=100)

    def test_overlap_larger_than_size(self) -> None:
        with pytest.raises(ConfigurationError):
            _make_engine(chunk_size=50, chunk_overlap=80)

    def test_negative_overlap(self) -> None:
        with pytest.raises(ConfigurationError):
            _make_engine(chunk_overlap=-1)

    def test_zero_size(self) -> None:
        with pytest.raises(ConfigurationError):
            _make_engine(chunk_size=0, chunk_overlap=0)


class TestWindowing:
    """Character windows over text with and without delimiters."""

    def test_empty_text_gives_no_chunks(self) -> None:
        assert _make_engine().split_text("") == []
        assert _make_engine().split_text("   \n\n  ") == []

    def test_short_text_is_one_chunk(self) -> None:
        assert _make_engine().split_text("Short text.") == ["Short text."]

    def test_chunk_count_without_delimiters(self) -> None:
        # ceil((420 - 20) / (100 - 20)) == 5
        pieces = _make_engine().split_text(_hex_text(420))
        assert len(pieces) == 5

    def test_windows_respect_size_and_overlap(self) -> None:
        text = _hex_text(420)
        pieces = _make_engine().split_text(text)
        assert all(len(p) <= 100 for p in pieces)
        for prev, nxt in zip(pieces, pieces[1:]):
            assert prev[-20:] == nxt[:20], "consecutive windows must share the overlap"

    def test_windows_cover_the_whole_text(self) -> None:
        text = _hex_text(420)
        pieces = _make_engine().split_text(text)
        assert pieces[0] == text[:100]
        assert text.endswith(pieces[-1])

    def test_snaps_to_sentence_boundary(self) -> None:
        sentence = "Workers must wear gloves. "
        text = sentence * 10
        pieces = _make_engine(chunk_size=100, chunk_overlap=20, boundary_tolerance=40).split_text(text)
        assert len(pieces) > 1
        assert pieces[0].endswith("gloves."), pieces[0]

    def test_paragraph_boundary_preferred(self) -> None:
        first = "a" * 70
        second = "b " * 60
        text = f"{first}\n\n{second}"
        pieces = _make_engine(chunk_size=100, chunk_overlap=10, boundary_tolerance=50).split_text(text)
        assert pieces[0] == first

    def test_zero_tolerance_never_snaps(self) -> None:
        text = "word " * 50
        pieces = _make_engine(chunk_size=100, chunk_overlap=20, boundary_tolerance=0).split_text(text)
        assert pieces[0] == text[:100].strip()


class TestDocumentChunking:
    """Sections, default section name and chunk metadata."""

    def test_sections_are_chunked_in_order(self) -> None:
        parsed = ParsedDocument(
            title="Handbook",
            sections=[
                ParsedSection(title="Intro", content="Read this first.", level=1),
                ParsedSection(title="Ladders", content="Keep three points of contact.", level=2),
            ],
        )
        spans = _make_engine().chunk(parsed)
        assert [s.section for s in spans] == ["Intro", "Ladders"]
        assert [s.index for s in spans] == [0, 1]
        assert all(s.total_chunks == 2 for s in spans)
        assert spans[1].section_level == 2

    def test_raw_text_used_when_no_sections(self) -> None:
        parsed = ParsedDocument(title="Notes", raw_text="Plain body text.")
        spans = _make_engine().chunk(parsed)
        assert len(spans) == 1
        assert spans[0].section == "Content"

    def test_empty_document_gives_no_chunks(self) -> None:
        assert _make_engine().chunk(ParsedDocument(title="Empty")) == []

    def test_build_chunks_carries_metadata(self) -> None:
        parsed = ParsedDocument(
            title="Handbook",
            sections=[ParsedSection(title="Fire", content="Know your exits.")],
            metadata={"file_type": "md"},
        )
        chunks = _make_engine().build_chunks(parsed, "docs/handbook.md")
        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.title == "Handbook"
        assert chunk.section == "Fire"
        assert chunk.source_path == "docs/handbook.md"
        assert chunk.hash == content_hash("Know your exits.")
        assert chunk.metadata["file_type"] == "md"
        assert chunk.metadata["chunk_index"] == "0"
        assert chunk.metadata["total_chunks"] == "1"

    def test_chunk_ids_are_unique(self) -> None:
        parsed = ParsedDocument(title="T", raw_text=_hex_text(420))
        chunks = _make_engine().build_chunks(parsed, "t.txt")
        assert len({c.id for c in chunks}) == len(chunks)
