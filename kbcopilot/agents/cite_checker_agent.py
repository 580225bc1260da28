"""Cite checker: grounding, coverage, output moderation and redaction.

Runs after the drafter on every request:

1. Citations whose chunk id is not in the frozen retrieved set are
   dropped (or raise :class:`GroundingError` when the policy makes that a
   hard failure).  An answer left with no citation is low confidence.
2. Marker coverage: share of non-empty lines carrying a ``[#n]`` marker.
3. Output moderation: blocked text is replaced by the refusal message.
4. Response redaction, when the policy asks for it.
5. For letters, policy references (``Policy 4.2``, ``Form WC-1`` ...) are
   collected from the body.
"""

from __future__ import annotations

import re

from kbcopilot.agents.base_agent import BaseAgent
from kbcopilot.agents.drafter_agent import MARKER_PATTERN
from kbcopilot.models.answer import Answer, CitationCoverage, LetterDraft
from kbcopilot.models.pipeline import OrchestrationContext, PipelineStage, ValidateTrace
from kbcopilot.services.governance.governance_gate import GovernanceGate
from kbcopilot.utils.errors import GroundingError

WELL_CITED_THRESHOLD = 80.0

_POLICY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("Policy", re.compile(r"\bPolicy\s+(\d+(?:\.\d+)?)", re.IGNORECASE)),
    ("Section", re.compile(r"\bSection\s+(\d+(?:\.\d+)?)", re.IGNORECASE)),
    ("Regulation", re.compile(r"\bRegulation\s+(\d+(?:\.\d+)?)", re.IGNORECASE)),
    # Codes must contain a digit so "form is" or "procedure to" never match.
    ("Form", re.compile(r"\bForm\s+((?=[A-Z0-9-]*\d)[A-Z0-9]+(?:-[A-Z0-9]+)*)\b", re.IGNORECASE)),
    ("Procedure", re.compile(r"\bProcedure\s+((?=[A-Z0-9-]*\d)[A-Z0-9]+(?:-[A-Z0-9]+)*)\b", re.IGNORECASE)),
]


def citation_coverage(text: str) -> CitationCoverage:
    lines = [line for line in text.split("\n") if line.strip()]
    markers = MARKER_PATTERN.findall(text)
    cited = sum(1 for line in lines if MARKER_PATTERN.search(line))
    percentage = (cited / len(lines) * 100) if lines else 0.0
    return CitationCoverage(
        markers_found=len(markers),
        paragraph_count=len(lines),
        paragraphs_with_citations=cited,
        coverage_percentage=round(percentage, 2),
        well_cited=bool(markers) and percentage >= WELL_CITED_THRESHOLD,
    )


def extract_policy_references(text: str) -> list[str]:
    """Distinct references in order of first appearance."""
    found: list[tuple[int, str]] = []
    for label, pattern in _POLICY_PATTERNS:
        for match in pattern.finditer(text):
            found.append((match.start(), f"{label} {match.group(1).upper()}"))
    seen: set[str] = set()
    ordered: list[str] = []
    for _, ref in sorted(found):
        if ref not in seen:
            seen.add(ref)
            ordered.append(ref)
    return ordered


class CiteCheckerAgent(BaseAgent):
    """Validates the drafted answer before it leaves the pipeline."""

    name = "cite_checker"

    def __init__(self, gate: GovernanceGate) -> None:
        super().__init__()
        self._gate = gate

    async def execute(self, context: OrchestrationContext, start: float) -> OrchestrationContext:
        answer = context.answer or Answer(content="")
        allowed = context.retrieved_ids

        kept = [c for c in answer.citations if c.id in allowed]
        dropped = [c for c in answer.citations if c.id not in allowed]
        if dropped:
            self._logger.warning(
                "ungrounded_citations",
                dropped=[c.id for c in dropped],
                retrieved=len(allowed),
            )
            if self._gate.policy.grounding_failure_is_error:
                raise GroundingError(
                    message=f"{len(dropped)} citation(s) outside the retrieved set",
                    provider_name=self.name,
                )
        low_confidence = not kept

        coverage = citation_coverage(answer.content)

        letter = context.letter
        # A letter's subject reaches the caller too, so it is moderated with the body.
        moderated_text = answer.content if letter is None else f"{letter.subject}\n\n{answer.content}"
        moderation = await self._gate.moderate(moderated_text)
        self._gate.enforce(moderation, "output")

        content = answer.content
        blocked = moderation.blocked
        if blocked:
            self._logger.warning("output_blocked", reason=moderation.reason)
            content = self._gate.refusal_message
            kept = []
            low_confidence = True
            if letter is not None:
                letter = LetterDraft(subject="Content withheld", body=content, placeholders=[])

        redaction = self._gate.for_response(content)
        content = redaction.redacted_content
        if letter is not None and not blocked:
            letter = letter.model_copy(
                update={
                    "body": content,
                    "subject": self._gate.for_response(letter.subject).redacted_content,
                }
            )

        policy_references = extract_policy_references(content) if letter is not None else []

        validated = Answer(content=content, citations=kept, low_confidence=low_confidence)
        trace = ValidateTrace(
            agent=self.name,
            action="blocked" if blocked else "validated",
            duration_ms=self.elapsed_ms(start),
            citations_kept=len(kept),
            citations_dropped=len(dropped),
            low_confidence=low_confidence,
            moderation_action=moderation.action,
            redactions=len(redaction.redactions),
        )
        self._logger.info(
            "answer_validated",
            citations_kept=len(kept),
            citations_dropped=len(dropped),
            coverage=coverage.coverage_percentage,
            moderation=moderation.action.value,
        )
        return context.advance(
            PipelineStage.VALIDATED,
            answer=validated,
            letter=letter,
            coverage=coverage,
            output_moderation=moderation,
            redaction=redaction,
            blocked=context.blocked or blocked,
            policy_references=policy_references,
        ).with_trace(trace)
