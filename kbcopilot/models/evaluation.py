"""Models for the golden-dataset evaluation harness.

A golden item is one question with the phrases its answer must contain and
the source titles it must cite (either list may be empty, and any one match
in a list is enough).  Items flagged ``expect_refusal`` pass only when the
pipeline refuses them.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class GoldenItem(BaseModel):
    """One row of the golden dataset."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=80)
    question: str = Field(min_length=1, max_length=2000)
    must_contain: list[str] = Field(default_factory=list)
    must_cite_title: list[str] = Field(default_factory=list)
    category: str = "general"
    expect_refusal: bool = False


class EvaluationResult(BaseModel):
    """Outcome of running one golden item through the ask pipeline."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    question: str
    category: str = "general"
    answer: str = ""
    citation_titles: list[str] = Field(default_factory=list)
    has_citations: bool = False
    contains_expected_content: bool = False
    cites_expected_source: bool = False
    expected_refusal: bool = False
    refused: bool = False
    response_time_ms: float = 0.0
    error_message: str | None = None

    @property
    def refused_correctly(self) -> bool:
        return self.refused == self.expected_refusal

    @property
    def successful(self) -> bool:
        if self.error_message:
            return False
        if self.expected_refusal:
            return self.refused
        return (
            not self.refused
            and self.has_citations
            and self.contains_expected_content
            and self.cites_expected_source
        )


class EvaluationTargets(BaseModel):
    """Pass thresholds for the headline metrics (percentages, milliseconds)."""

    model_config = ConfigDict(frozen=True)

    groundedness: float = 95.0
    citation_precision: float = 80.0
    overall_success: float = 90.0
    max_average_response_ms: float = 500.0


class EvaluationMetrics(BaseModel):
    """Aggregates over a list of :class:`EvaluationResult`."""

    model_config = ConfigDict(frozen=True)

    total_questions: int = 0
    successful_responses: int = 0
    responses_with_citations: int = 0
    responses_with_expected_content: int = 0
    responses_with_correct_citations: int = 0
    correct_refusals: int = 0
    refusal_questions: int = 0
    error_responses: int = 0
    groundedness_percentage: float = 0.0
    citation_precision_percentage: float = 0.0
    overall_success_percentage: float = 0.0
    # None when the dataset has no refusal items.
    refusal_accuracy_percentage: float | None = None
    average_response_time_ms: float = 0.0
    errors_by_message: dict[str, int] = Field(default_factory=dict)
    success_rate_by_category: dict[str, float] = Field(default_factory=dict)

    def checks(self, targets: EvaluationTargets) -> dict[str, bool]:
        """Pass/fail per headline metric."""
        return {
            "groundedness": self.groundedness_percentage >= targets.groundedness,
            "citation_precision": self.citation_precision_percentage >= targets.citation_precision,
            "overall_success": self.overall_success_percentage >= targets.overall_success,
            "average_response_time": self.average_response_time_ms <= targets.max_average_response_ms,
        }


class EvaluationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    report_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    generated_at: datetime = Field(default_factory=_utcnow)
    dataset_path: str = ""
    metrics: EvaluationMetrics
    targets: EvaluationTargets = Field(default_factory=EvaluationTargets)
    checks: dict[str, bool] = Field(default_factory=dict)
    # True when every headline check passed.
    passed: bool = False
    results: list[EvaluationResult] = Field(default_factory=list)
