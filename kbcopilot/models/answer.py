"""Value objects produced by the drafting and citation-checking stages."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from kbcopilot.models.rag import SearchResult
from kbcopilot.utils.text import truncate


class Citation(BaseModel):
    """A reference from an answer to one retrieved chunk.

    ``id`` is the chunk id.  The citation checker drops any citation whose
    id is not in the request's frozen retrieved set.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    title: str = ""
    url: str | None = None
    # Excerpt of the chunk text, at most 200 characters plus "...".
    text: str = ""

    @classmethod
    def from_result(cls, result: SearchResult) -> Citation:
        chunk = result.chunk
        url = chunk.metadata.get("url")
        if not url and chunk.source_path.startswith(("http://", "https://")):
            url = chunk.source_path
        return cls(
            id=chunk.id,
            score=result.score,
            title=chunk.title,
            url=url or None,
            text=truncate(chunk.text, 200),
        )


class Answer(BaseModel):
    """Generated answer text plus the citations backing it."""

    model_config = ConfigDict(frozen=True)

    content: str
    citations: list[Citation] = Field(default_factory=list)
    # Set when no grounded citation survives validation.
    low_confidence: bool = False

    @property
    def citation_ids(self) -> list[str]:
        return [c.id for c in self.citations]


class LetterDraft(BaseModel):
    """A drafted letter with ``{placeholder}`` slots left for the author."""

    model_config = ConfigDict(frozen=True)

    subject: str
    body: str
    placeholders: list[str] = Field(default_factory=list)


class CitationCoverage(BaseModel):
    """How well the answer text is covered by ``[#n]`` markers."""

    model_config = ConfigDict(frozen=True)

    markers_found: int = 0
    paragraph_count: int = 0
    paragraphs_with_citations: int = 0
    coverage_percentage: float = 0.0
    # True when at least one marker exists and >= 80 % of paragraphs cite.
    well_cited: bool = False
