"""Drafter: build the prompt under the token budget and call the model.

Prompt layout::

    <instructions, adapted to the persona>
    Context:
    [#1] [Source: {title} - {section}]
    {chunk text}
    ...
    Conversation so far:
    User: ... / Assistant: ...
    Question: ...        (or the letter purpose and key points)

When the prompt exceeds ``max_tokens - reserved_tokens`` the drafter drops
conversation turns oldest first, then context chunks with the oldest
``created_at`` (ties drop the lowest-ranked chunk first).  The question is
never dropped.  Context blocks are renumbered after every drop, so ``[#n]``
always refers to the n-th block actually sent.
"""

from __future__ import annotations

import json
import re

from kbcopilot.agents.base_agent import BaseAgent
from kbcopilot.interfaces.generation_provider import IGenerationProvider
from kbcopilot.models.answer import Answer, Citation, LetterDraft
from kbcopilot.models.memory import PersonaMemory
from kbcopilot.models.pipeline import DraftTrace, OrchestrationContext, PipelineStage
from kbcopilot.models.rag import SearchResult
from kbcopilot.services.governance.governance_gate import GovernanceGate
from kbcopilot.utils.errors import GenerationError
from kbcopilot.utils.text import estimate_tokens, sha256_hex

MARKER_PATTERN = re.compile(r"\[#(\d+)\]")
_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

FALLBACK_SUBJECT = "Workplace Safety Communication"
FALLBACK_PLACEHOLDERS = ["recipient_name", "sender_name"]

_ASK_INSTRUCTIONS = (
    "You are a knowledge-base assistant for a {role}. Answer the question "
    "using only the numbered context blocks. Cite every statement with the "
    "marker of the block it comes from, e.g. [#1]. If the context does not "
    "contain the answer, say so. Response style: {style}."
)
_DRAFT_INSTRUCTIONS = (
    "You draft professional letters for a {role}. Use only the numbered "
    "context blocks for facts and cite them with markers such as [#1]. "
    "Leave {{placeholders}} for names and details you do not know. Reply "
    'with JSON only: {{"subject": "...", "body": "...", "placeholders": ["..."]}}. '
    "Response style: {style}."
)


class DrafterAgent(BaseAgent):
    """Generates the answer (or letter) from the frozen retrieved set."""

    name = "drafter"

    def __init__(
        self,
        generation_provider: IGenerationProvider,
        gate: GovernanceGate,
        max_memory_turns: int = 3,
        temperature: float = 0.3,
    ) -> None:
        super().__init__()
        self._generation = generation_provider
        self._gate = gate
        self._max_memory_turns = max_memory_turns
        self._temperature = temperature

    async def execute(self, context: OrchestrationContext, start: float) -> OrchestrationContext:
        turns = context.conversation.recent_turns(self._max_memory_turns) if context.conversation else []
        memory = [self._gate.for_prompt(t.render()) for t in turns]
        chunks = list(context.retrieved)
        is_draft = context.draft is not None

        prompt, chunks, dropped_turns, dropped_chunks = self._fit_prompt(context, memory, chunks, is_draft)

        result = await self._generation.generate(
            prompt,
            max_tokens=max(context.budget.reserved_tokens, 1),
            temperature=self._temperature,
        )
        text = result.text.strip()
        if not text:
            raise GenerationError(
                message="Model returned an empty completion",
                provider_name=self._generation.get_provider_name(),
            )

        letter = None
        if is_draft:
            letter = parse_letter(text)
            cited_text = letter.body
        else:
            cited_text = text
        citations, unresolved = resolve_citations(cited_text, chunks)
        answer = Answer(content=cited_text, citations=citations)

        input_tokens = result.input_tokens or estimate_tokens(prompt)
        output_tokens = result.output_tokens or estimate_tokens(text)
        prompt_sha = sha256_hex(prompt)
        trace = DraftTrace(
            agent=self.name,
            action="drafted_letter" if is_draft else "answered",
            duration_ms=self.elapsed_ms(start),
            prompt_sha=prompt_sha,
            model=result.model or self._generation.get_model_name(),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            context_chunks=len(chunks),
            dropped_memory_turns=dropped_turns,
            dropped_chunks=dropped_chunks,
            unresolved_markers=unresolved,
        )
        self._logger.info(
            "draft_generated",
            model=trace.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            context_chunks=len(chunks),
            dropped_chunks=dropped_chunks,
        )
        return context.advance(
            PipelineStage.DRAFTED,
            answer=answer,
            letter=letter,
            prompt_sha=prompt_sha,
            model=trace.model,
            budget=context.budget.record(input_tokens, output_tokens),
        ).with_trace(trace)

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    def _fit_prompt(
        self,
        context: OrchestrationContext,
        memory: list[str],
        chunks: list[SearchResult],
        is_draft: bool,
    ) -> tuple[str, list[SearchResult], int, int]:
        """Drop memory, then chunks, until the prompt fits the budget."""
        dropped_turns = dropped_chunks = 0
        prompt = build_prompt(context, memory, chunks, is_draft)
        while not context.budget.fits(estimate_tokens(prompt)):
            if memory:
                memory = memory[1:]
                dropped_turns += 1
            elif chunks:
                victim = max(
                    range(len(chunks)),
                    key=lambda i: (-chunks[i].chunk.created_at.timestamp(), i),
                )
                chunks = chunks[:victim] + chunks[victim + 1 :]
                dropped_chunks += 1
            else:
                break
            prompt = build_prompt(context, memory, chunks, is_draft)
        if dropped_turns or dropped_chunks:
            self._logger.info(
                "prompt_trimmed",
                limit=context.budget.prompt_limit,
                dropped_memory_turns=dropped_turns,
                dropped_chunks=dropped_chunks,
            )
        return prompt, chunks, dropped_turns, dropped_chunks


def _persona_fields(persona: PersonaMemory | None) -> dict[str, str]:
    if persona is None:
        return {"role": "workplace safety professional", "style": "professional"}
    return {"role": persona.role, "style": persona.response_style}


def build_prompt(
    context: OrchestrationContext,
    memory: list[str],
    chunks: list[SearchResult],
    is_draft: bool,
) -> str:
    template = _DRAFT_INSTRUCTIONS if is_draft else _ASK_INSTRUCTIONS
    parts = [template.format(**_persona_fields(context.persona))]

    if chunks:
        blocks = [
            f"[#{n}] [Source: {r.chunk.title} - {r.chunk.section}]\n{r.chunk.text}"
            for n, r in enumerate(chunks, start=1)
        ]
        parts.append("Context:\n" + "\n\n".join(blocks))
    else:
        parts.append("Context:\n(no relevant documents found)")

    if memory:
        parts.append("Conversation so far:\n" + "\n\n".join(memory))

    if is_draft and context.draft is not None:
        points = "\n".join(f"- {p}" for p in context.draft.points)
        case = f"\nCase: {context.draft.case_id}" if context.draft.case_id else ""
        parts.append(f"Letter purpose: {context.draft.purpose}{case}\nKey points:\n{points}")
    else:
        parts.append(f"Question: {context.query_text}")
    return "\n\n".join(parts)


def resolve_citations(text: str, chunks: list[SearchResult]) -> tuple[list[Citation], int]:
    """Map ``[#n]`` markers onto the prompt's chunks.

    Returns the citations in order of first mention and the number of
    markers that point outside the prompt.  Text without any marker cites
    every prompt chunk.
    """
    numbers = [int(m) for m in MARKER_PATTERN.findall(text)]
    if not numbers:
        return [Citation.from_result(r) for r in chunks], 0

    citations: list[Citation] = []
    seen: set[int] = set()
    unresolved = 0
    for n in numbers:
        if not 1 <= n <= len(chunks):
            unresolved += 1
            continue
        if n not in seen:
            seen.add(n)
            citations.append(Citation.from_result(chunks[n - 1]))
    return citations, unresolved


def parse_letter(text: str) -> LetterDraft:
    """Parse the model's JSON letter; plain text becomes the body of a fallback draft."""
    cleaned = _JSON_FENCE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("body"), str) and data["body"].strip():
        placeholders = data.get("placeholders") or []
        return LetterDraft(
            subject=str(data.get("subject") or FALLBACK_SUBJECT),
            body=data["body"],
            placeholders=[str(p) for p in placeholders] if isinstance(placeholders, list) else [],
        )
    return LetterDraft(subject=FALLBACK_SUBJECT, body=text, placeholders=list(FALLBACK_PLACEHOLDERS))
