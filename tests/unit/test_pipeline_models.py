"""Unit tests for the pipeline state models: stages, context, budget, audit snapshot."""

from __future__ import annotations

import pytest

from kbcopilot.models.answer import Answer, Citation
from kbcopilot.models.audit import AuditLogEntry, AuditStatus
from kbcopilot.models.pipeline import (
    ErrorTrace,
    OrchestrationContext,
    PipelineStage,
    RetrieveTrace,
    TokenBudget,
)
from kbcopilot.models.requests import AskRequest, DraftLetterRequest
from tests.conftest import make_result


class TestPipelineStage:
    def test_ranks_increase_along_the_happy_path(self) -> None:
        path = [
            PipelineStage.CREATED,
            PipelineStage.ROUTED,
            PipelineStage.RETRIEVED,
            PipelineStage.DRAFTED,
            PipelineStage.VALIDATED,
            PipelineStage.COMPLETED,
        ]
        assert [s.rank for s in path] == sorted(s.rank for s in path)

    def test_terminal_stages(self) -> None:
        assert PipelineStage.COMPLETED.is_terminal
        assert PipelineStage.FAILED.is_terminal
        assert not PipelineStage.VALIDATED.is_terminal


class TestOrchestrationContext:
    """Transitions only move forward and never mutate the original."""

    def test_advance_returns_new_context(self) -> None:
        context = OrchestrationContext(ask=AskRequest(question="q"))
        routed = context.advance(PipelineStage.ROUTED, user_id="u1")
        assert context.stage is PipelineStage.CREATED
        assert context.user_id is None
        assert routed.stage is PipelineStage.ROUTED
        assert routed.user_id == "u1"
        assert routed.correlation_id == context.correlation_id

    def test_backwards_transition_rejected(self) -> None:
        context = OrchestrationContext().advance(PipelineStage.RETRIEVED)
        with pytest.raises(ValueError):
            context.advance(PipelineStage.ROUTED)
        with pytest.raises(ValueError):
            context.advance(PipelineStage.RETRIEVED)

    def test_skip_ahead_allowed(self) -> None:
        done = OrchestrationContext().advance(PipelineStage.ROUTED).advance(PipelineStage.COMPLETED)
        assert done.stage is PipelineStage.COMPLETED
        assert done.completed_at is not None

    def test_terminal_context_is_final(self) -> None:
        done = OrchestrationContext().advance(PipelineStage.COMPLETED)
        with pytest.raises(ValueError):
            done.advance(PipelineStage.FAILED)

    def test_fail_from_any_stage(self) -> None:
        failed = OrchestrationContext().advance(PipelineStage.DRAFTED).fail("boom")
        assert failed.stage is PipelineStage.FAILED
        assert failed.error == "boom"
        assert failed.fail("again") is failed

    def test_with_trace_appends(self) -> None:
        context = OrchestrationContext()
        entry = RetrieveTrace(agent="retriever", action="searched", duration_ms=1.0)
        traced = context.with_trace(entry)
        assert context.traces == []
        assert traced.traces == [entry]

    def test_query_text_for_drafts(self) -> None:
        context = OrchestrationContext(draft=DraftLetterRequest(purpose="Remind", points=["gloves", "boots"]))
        assert context.query_text == "Remind gloves boots"

    def test_request_settings_exposed(self) -> None:
        context = OrchestrationContext(ask=AskRequest(question="q", top_k=3, enable_rerank=True))
        assert context.top_k == 3
        assert context.enable_rerank is True
        assert OrchestrationContext().top_k == 10

    def test_retrieved_ids(self) -> None:
        context = OrchestrationContext(retrieved=[make_result(chunk_id="a"), make_result(chunk_id="b")])
        assert context.retrieved_ids == frozenset({"a", "b"})


class TestTokenBudget:
    def test_prompt_limit_reserves_answer_tokens(self) -> None:
        budget = TokenBudget(max_tokens=1000, reserved_tokens=300)
        assert budget.prompt_limit == 700
        assert budget.fits(700)
        assert not budget.fits(701)

    def test_reserved_larger_than_max(self) -> None:
        assert TokenBudget(max_tokens=100, reserved_tokens=300).prompt_limit == 0

    def test_record_accumulates(self) -> None:
        budget = TokenBudget().record(10, 5).record(3, 2)
        assert (budget.input_tokens, budget.output_tokens) == (13, 7)


class TestAuditLogEntry:
    """Status is derived from how the request ended."""

    def _context(self) -> OrchestrationContext:
        answer = Answer(content="ok", citations=[Citation.from_result(make_result(chunk_id="a"))])
        return OrchestrationContext(ask=AskRequest(question="q"), user_id="u1").advance(
            PipelineStage.VALIDATED, answer=answer, prompt_sha="abc", model="m"
        )

    def test_completed(self) -> None:
        entry = AuditLogEntry.from_context(self._context().advance(PipelineStage.COMPLETED), "in", "out")
        assert entry.status is AuditStatus.COMPLETED
        assert entry.citation_ids == ["a"]
        assert (entry.inputs, entry.outputs, entry.prompt_sha, entry.model) == ("in", "out", "abc", "m")
        assert entry.user_id == "u1"

    def test_blocked(self) -> None:
        context = self._context().model_copy(update={"blocked": True}).advance(PipelineStage.COMPLETED)
        assert AuditLogEntry.from_context(context, "", "").status is AuditStatus.BLOCKED

    def test_failed_keeps_error_trace(self) -> None:
        context = self._context().with_trace(
            ErrorTrace(agent="drafter", action="failed", duration_ms=2.0, error_type="GenerationError")
        ).fail("timeout")
        entry = AuditLogEntry.from_context(context, "", "")
        assert entry.status is AuditStatus.FAILED
        assert entry.error == "timeout"
        assert entry.traces[-1].kind == "error"

    def test_cancelled_wins(self) -> None:
        context = self._context().fail("Request cancelled")
        assert AuditLogEntry.from_context(context, "", "", cancelled=True).status is AuditStatus.CANCELLED

    def test_entry_survives_json_round_trip(self) -> None:
        context = self._context().with_trace(
            ErrorTrace(agent="drafter", action="failed", duration_ms=2.0, error_type="GenerationError")
        )
        entry = AuditLogEntry.from_context(context, "in", "out")
        restored = AuditLogEntry.model_validate_json(entry.model_dump_json())
        assert restored == entry
        assert isinstance(restored.traces[0], ErrorTrace)
