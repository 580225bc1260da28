"""Golden-dataset evaluation over the ask pipeline.

Loads a CSV of questions with expected content and expected source titles,
asks each one through :class:`~kbcopilot.pipeline.orchestrator.AgentPipeline`
with bounded concurrency, scores the answers and aggregates the metrics
into an :class:`EvaluationReport` (optionally written as markdown).

CSV columns (header names are case-insensitive, underscores ignored):

    id, question, must_contain, must_cite_title[, category[, expect_refusal]]

``must_contain`` and ``must_cite_title`` hold ``|``-separated alternatives;
one case-insensitive match is enough.  A question that fails (pipeline
error or timeout) is recorded in its result and never aborts the run.
"""

from __future__ import annotations

import asyncio
import csv
import time
import uuid
from collections import Counter, defaultdict
from pathlib import Path
from typing import TYPE_CHECKING

import pydantic
import structlog

from kbcopilot.models.evaluation import (
    EvaluationMetrics,
    EvaluationReport,
    EvaluationResult,
    EvaluationTargets,
    GoldenItem,
)
from kbcopilot.models.requests import AskRequest, EvaluationRequest
from kbcopilot.utils.concurrency import throttled_gather
from kbcopilot.utils.errors import KnowledgeBaseError, ValidationError

if TYPE_CHECKING:
    from kbcopilot.models.responses import AskResponse
    from kbcopilot.pipeline.orchestrator import AgentPipeline

logger = structlog.get_logger(logger_name=__name__)

_REQUIRED_COLUMNS = ("id", "question", "mustcontain", "mustcitetitle")
_TRUE_VALUES = {"1", "true", "yes", "y"}


def _column(name: str) -> str:
    return name.strip().lower().replace("_", "").replace(" ", "")


def _alternatives(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split("|") if part.strip()]


def _percentage(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def contains_expected_content(answer: str, phrases: list[str]) -> bool:
    if not phrases:
        return True
    lowered = answer.lower()
    return any(phrase.lower() in lowered for phrase in phrases)


def cites_expected_source(citation_titles: list[str], titles: list[str]) -> bool:
    if not titles:
        return True
    lowered = [t.lower() for t in citation_titles]
    return any(expected.lower() in cited for expected in titles for cited in lowered)


class EvaluationService:
    """Runs golden questions through the ask pipeline and scores them.

    Parameters
    ----------
    pipeline:
        The ask/draft pipeline under evaluation.
    refusal_message:
        The governance refusal text; an answer equal to it counts as a
        refusal even when the response is not flagged as blocked.
    targets:
        Pass thresholds for the headline metrics.
    """

    def __init__(
        self,
        pipeline: AgentPipeline,
        refusal_message: str,
        targets: EvaluationTargets | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._refusal_message = refusal_message
        self._targets = targets or EvaluationTargets()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, request: EvaluationRequest) -> EvaluationReport:
        """Evaluate every golden item and build the report.

        Raises
        ------
        ValidationError
            If the dataset is missing, malformed or empty.
        """
        items = self.load_golden_dataset(request.dataset_path)
        run_id = uuid.uuid4().hex[:8]
        logger.info(
            "evaluation_started",
            dataset=request.dataset_path,
            questions=len(items),
            max_concurrent=request.max_concurrent,
        )

        semaphore = asyncio.Semaphore(request.max_concurrent)
        results = await throttled_gather(
            [self.evaluate_item(item, request, run_id) for item in items],
            semaphore,
            return_exceptions=False,
        )

        metrics = self.calculate_metrics(results)
        checks = metrics.checks(self._targets)
        report = EvaluationReport(
            dataset_path=request.dataset_path,
            metrics=metrics,
            targets=self._targets,
            checks=checks,
            passed=all(checks.values()),
            results=results,
        )
        if request.report_path:
            self.save_report(report, request.report_path)

        logger.info(
            "evaluation_complete",
            total=metrics.total_questions,
            success_pct=metrics.overall_success_percentage,
            groundedness_pct=metrics.groundedness_percentage,
            errors=metrics.error_responses,
            passed=report.passed,
        )
        return report

    def load_golden_dataset(self, path: str) -> list[GoldenItem]:
        """Parse the golden CSV into items, in file order."""
        dataset = Path(path)
        if not dataset.is_file():
            raise ValidationError(message=f"Golden dataset not found: {path}", provider_name="evaluation")

        items: list[GoldenItem] = []
        with dataset.open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            columns = {_column(name): name for name in reader.fieldnames or []}
            missing = [c for c in _REQUIRED_COLUMNS if c not in columns]
            if missing:
                raise ValidationError(
                    message=f"Golden dataset {path} is missing columns: {', '.join(missing)}",
                    provider_name="evaluation",
                )
            for row in reader:
                values = {key: (row.get(original) or "").strip() for key, original in columns.items()}
                if not any(values.values()):
                    continue
                try:
                    items.append(
                        GoldenItem(
                            id=values["id"],
                            question=values["question"],
                            must_contain=_alternatives(values["mustcontain"]),
                            must_cite_title=_alternatives(values["mustcitetitle"]),
                            category=values.get("category") or "general",
                            expect_refusal=values.get("expectrefusal", "").lower() in _TRUE_VALUES,
                        )
                    )
                except pydantic.ValidationError as exc:
                    raise ValidationError(
                        message=f"Golden dataset {path}, line {reader.line_num}: {exc.errors()[0]['msg']}",
                        provider_name="evaluation",
                    ) from exc

        if not items:
            raise ValidationError(message=f"Golden dataset {path} has no questions", provider_name="evaluation")
        logger.info("golden_dataset_loaded", path=path, items=len(items))
        return items

    async def evaluate_item(self, item: GoldenItem, request: EvaluationRequest, run_id: str = "") -> EvaluationResult:
        """Ask one golden question and score the response."""
        ask = AskRequest(
            question=item.question,
            conversation_id=f"eval-{run_id}-{item.id}" if run_id else f"eval-{item.id}",
            max_tokens=request.max_tokens,
            top_k=request.top_k,
        )
        start = time.monotonic()
        try:
            response: AskResponse = await asyncio.wait_for(self._pipeline.ask(ask), timeout=request.timeout_seconds)
        except asyncio.TimeoutError:
            return self._failed(item, start, f"Timed out after {request.timeout_seconds:g}s")
        except KnowledgeBaseError as exc:
            return self._failed(item, start, exc.message)

        answer = response.answer
        titles = [c.title for c in answer.citations]
        refused = response.metadata.blocked or answer.content.strip() == self._refusal_message.strip()
        result = EvaluationResult(
            question_id=item.id,
            question=item.question,
            category=item.category,
            answer=answer.content,
            citation_titles=titles,
            has_citations=bool(answer.citations),
            contains_expected_content=contains_expected_content(answer.content, item.must_contain),
            cites_expected_source=cites_expected_source(titles, item.must_cite_title),
            expected_refusal=item.expect_refusal,
            refused=refused,
            response_time_ms=(time.monotonic() - start) * 1000,
        )
        logger.debug(
            "evaluation_item_scored",
            question_id=item.id,
            successful=result.successful,
            citations=len(titles),
            elapsed_ms=round(result.response_time_ms, 1),
        )
        return result

    @staticmethod
    def calculate_metrics(results: list[EvaluationResult]) -> EvaluationMetrics:
        total = len(results)
        refusal_items = [r for r in results if r.expected_refusal]
        errors = Counter(r.error_message for r in results if r.error_message)

        by_category: dict[str, list[EvaluationResult]] = defaultdict(list)
        for result in results:
            by_category[result.category].append(result)

        successful = sum(r.successful for r in results)
        correct_refusals = sum(r.refused for r in refusal_items)
        return EvaluationMetrics(
            total_questions=total,
            successful_responses=successful,
            responses_with_citations=sum(r.has_citations for r in results),
            responses_with_expected_content=sum(r.contains_expected_content for r in results),
            responses_with_correct_citations=sum(r.cites_expected_source for r in results),
            correct_refusals=correct_refusals,
            refusal_questions=len(refusal_items),
            error_responses=sum(errors.values()),
            groundedness_percentage=_percentage(sum(r.has_citations for r in results), total),
            citation_precision_percentage=_percentage(sum(r.cites_expected_source for r in results), total),
            overall_success_percentage=_percentage(successful, total),
            refusal_accuracy_percentage=(
                _percentage(correct_refusals, len(refusal_items)) if refusal_items else None
            ),
            average_response_time_ms=(
                round(sum(r.response_time_ms for r in results) / total, 1) if total else 0.0
            ),
            errors_by_message=dict(errors),
            success_rate_by_category={
                category: _percentage(sum(r.successful for r in group), len(group))
                for category, group in sorted(by_category.items())
            },
        )

    def save_report(self, report: EvaluationReport, path: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(render_markdown(report), encoding="utf-8")
        logger.info("evaluation_report_saved", path=str(target))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _failed(item: GoldenItem, start: float, message: str) -> EvaluationResult:
        logger.warning("evaluation_item_failed", question_id=item.id, error=message)
        return EvaluationResult(
            question_id=item.id,
            question=item.question,
            category=item.category,
            expected_refusal=item.expect_refusal,
            response_time_ms=(time.monotonic() - start) * 1000,
            error_message=message,
        )


# ---------------------------------------------------------------------------
# Markdown rendering
# ---------------------------------------------------------------------------


def _mark(flag: bool) -> str:
    return "PASS" if flag else "FAIL"


def render_markdown(report: EvaluationReport) -> str:
    """Render *report* as a markdown document."""
    m = report.metrics
    t = report.targets
    checks = report.checks
    lines = [
        "# kbcopilot Evaluation Report",
        "",
        f"**Generated**: {report.generated_at:%Y-%m-%d %H:%M:%S} UTC",
        f"**Report ID**: {report.report_id}",
        f"**Dataset**: {report.dataset_path}",
        f"**Overall**: {_mark(report.passed)}",
        "",
        "## Metrics",
        "",
        "| Metric | Value | Target | Status |",
        "|--------|-------|--------|--------|",
        f"| Groundedness | {m.groundedness_percentage:.1f}% | >= {t.groundedness:g}% "
        f"| {_mark(checks.get('groundedness', False))} |",
        f"| Citation Precision | {m.citation_precision_percentage:.1f}% | >= {t.citation_precision:g}% "
        f"| {_mark(checks.get('citation_precision', False))} |",
        f"| Overall Success | {m.overall_success_percentage:.1f}% | >= {t.overall_success:g}% "
        f"| {_mark(checks.get('overall_success', False))} |",
        f"| Average Response Time | {m.average_response_time_ms:.0f}ms | <= {t.max_average_response_ms:g}ms "
        f"| {_mark(checks.get('average_response_time', False))} |",
        "",
        f"**Total Questions**: {m.total_questions}",
        f"**Successful Responses**: {m.successful_responses}",
        f"**Error Responses**: {m.error_responses}",
    ]
    if m.refusal_accuracy_percentage is not None:
        lines.append(
            f"**Refusal Accuracy**: {m.refusal_accuracy_percentage:.1f}% "
            f"({m.correct_refusals}/{m.refusal_questions})"
        )

    if m.success_rate_by_category:
        lines += ["", "## Success Rate by Category", ""]
        lines += [f"- **{category}**: {rate:.1f}%" for category, rate in m.success_rate_by_category.items()]

    lines += [
        "",
        "## Detailed Results",
        "",
        "| Question ID | Success | Citations | Expected Content | Correct Citation | Refusal | Response Time |",
        "|-------------|---------|-----------|------------------|------------------|---------|---------------|",
    ]
    for r in sorted(report.results, key=lambda r: r.question_id):
        lines.append(
            f"| {r.question_id} | {_mark(r.successful)} | {_mark(r.has_citations)} "
            f"| {_mark(r.contains_expected_content)} | {_mark(r.cites_expected_source)} "
            f"| {_mark(r.refused_correctly)} | {r.response_time_ms:.0f}ms |"
        )

    if m.errors_by_message:
        lines += ["", "## Errors", ""]
        lines += [f"- **{message}**: {count} occurrence(s)" for message, count in m.errors_by_message.items()]

    return "\n".join(lines) + "\n"
