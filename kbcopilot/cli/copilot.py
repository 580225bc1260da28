"""Argparse front end over :func:`kbcopilot.main.build_services`.

Subcommands:

  ingest  -- ingest a directory (recursive), a .zip archive or one file
  ask     -- answer a question with citations
  draft   -- draft a letter from a purpose and key points
  eval    -- run the golden dataset and report groundedness metrics
  stats   -- chunk count, audit count and provider names

Exit codes: 0 on success (including a partially successful ingest),
1 when the command failed or an evaluation missed a target, 2 for usage
errors (argparse).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import pydantic

from kbcopilot.config.loader import load_config
from kbcopilot.config.settings import Settings
from kbcopilot.models.rag import IngestStatus
from kbcopilot.models.requests import AskRequest, DraftLetterRequest, EvaluationRequest, IngestRequest
from kbcopilot.utils.errors import KnowledgeBaseError
from kbcopilot.utils.logging import configure_logging


def _print_json(payload: Any) -> None:
    if isinstance(payload, pydantic.BaseModel):
        print(payload.model_dump_json(indent=2))
    else:
        print(json.dumps(payload, indent=2, default=str))


async def _handle_ingest(args: argparse.Namespace, services: dict[str, Any]) -> int:
    request = IngestRequest(
        path=args.path,
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
        rebuild_index=args.rebuild,
    )
    report = await services["ingestion"].ingest(request)
    _print_json(report)
    return 1 if report.status is IngestStatus.FAILED else 0


async def _handle_ask(args: argparse.Namespace, services: dict[str, Any]) -> int:
    pipeline = _require_pipeline(services)
    request = AskRequest(
        question=args.question,
        conversation_id=args.conversation_id,
        user_id=args.user_id,
        top_k=args.top_k,
        max_tokens=args.max_tokens,
        enable_rerank=args.rerank,
    )
    await _prepare(services)
    _print_json(await pipeline.ask(request))
    return 0


async def _handle_draft(args: argparse.Namespace, services: dict[str, Any]) -> int:
    pipeline = _require_pipeline(services)
    request = DraftLetterRequest(
        purpose=args.purpose,
        points=args.point,
        case_id=args.case_id,
        conversation_id=args.conversation_id,
        user_id=args.user_id,
        max_tokens=args.max_tokens,
    )
    await _prepare(services)
    _print_json(await pipeline.draft_letter(request))
    return 0


async def _handle_eval(args: argparse.Namespace, services: dict[str, Any]) -> int:
    _require_pipeline(services)
    request = EvaluationRequest(
        dataset_path=args.dataset,
        report_path=args.report or None,
        max_concurrent=args.concurrency,
        timeout_seconds=args.timeout,
    )
    await _prepare(services)
    report = await services["evaluation"].run(request)
    payload = report.model_dump(mode="json")
    for entry, result in zip(payload["results"], report.results):
        entry["successful"] = result.successful
    _print_json(payload)
    return 0 if report.passed else 1


async def _handle_stats(services: dict[str, Any]) -> int:
    await _prepare(services)
    store = services["vector_store"]
    audit = services["audit"]
    generation = services["generation"]
    _print_json(
        {
            "vector_store": store.get_provider_name(),
            "healthy": await store.health_check(),
            "chunks": await store.count(),
            "audit_provider": audit.get_provider_name(),
            "audit_entries": await audit.count(),
            "embedding": services["embedding"].get_model_name(),
            "generation": generation.get_model_name() if generation else None,
        }
    )
    return 0


async def _prepare(services: dict[str, Any]) -> None:
    await services["vector_store"].initialize()
    await services["audit"].initialize()


def _require_pipeline(services: dict[str, Any]) -> Any:
    pipeline = services["pipeline"]
    if pipeline is None:
        raise KnowledgeBaseError(
            message="No generation provider configured; set ANTHROPIC_API_KEY or OPENAI_API_KEY",
            provider_name="cli",
        )
    return pipeline


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m kbcopilot.cli",
        description="Ingest documents and query the knowledge base.",
    )
    parser.add_argument("--config", default="config/config.yaml", help="Path to the YAML config")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest = subparsers.add_parser("ingest", help="Ingest a directory, .zip archive or file")
    ingest.add_argument("path", help="Directory, .zip archive or single document")
    ingest.add_argument("--chunk-size", type=int, default=None, dest="chunk_size")
    ingest.add_argument("--chunk-overlap", type=int, default=None, dest="chunk_overlap")
    ingest.add_argument("--rebuild", action="store_true", help="Clear the store before ingesting")

    # -- ask --
    ask = subparsers.add_parser("ask", help="Ask a question")
    ask.add_argument("question")
    ask.add_argument("--conversation-id", dest="conversation_id")
    ask.add_argument("--user-id", dest="user_id")
    ask.add_argument("--top-k", type=int, default=10, dest="top_k")
    ask.add_argument("--max-tokens", type=int, default=2000, dest="max_tokens")
    ask.add_argument("--rerank", action="store_true", help="Blend lexical overlap into the ranking")

    # -- draft --
    draft = subparsers.add_parser("draft", help="Draft a letter")
    draft.add_argument("--purpose", required=True)
    draft.add_argument("--point", action="append", required=True, help="Key point (repeatable)")
    draft.add_argument("--case-id", dest="case_id")
    draft.add_argument("--conversation-id", dest="conversation_id")
    draft.add_argument("--user-id", dest="user_id")
    draft.add_argument("--max-tokens", type=int, default=2000, dest="max_tokens")

    # -- eval --
    evaluate = subparsers.add_parser("eval", help="Run the golden dataset through the ask pipeline")
    evaluate.add_argument("--dataset", default=None, help="Golden CSV (default: evaluation.dataset)")
    evaluate.add_argument("--report", default=None, help="Markdown report path (default: evaluation.report)")
    evaluate.add_argument("--concurrency", type=int, default=None)
    evaluate.add_argument("--timeout", type=float, default=None, help="Per-question timeout in seconds")

    # -- stats --
    subparsers.add_parser("stats", help="Show store and audit statistics")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, build the services and dispatch to the subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    settings = Settings()
    configure_logging(log_level=settings.log_level, json_output=(settings.app_env == "production"))

    # Imported here so ``--help`` stays fast.
    from kbcopilot.main import build_services

    try:
        config = load_config(args.config, settings=settings)
        if args.command == "ingest":
            chunking = config.get("chunking", {}) or {}
            if args.chunk_size is None:
                args.chunk_size = int(chunking.get("chunk_size", 1000))
            if args.chunk_overlap is None:
                args.chunk_overlap = int(chunking.get("chunk_overlap", 200))
        elif args.command == "eval":
            evaluation = config.get("evaluation", {}) or {}
            if args.dataset is None:
                args.dataset = str(evaluation.get("dataset", "eval/golden.csv"))
            if args.report is None:
                args.report = evaluation.get("report") or ""
            if args.concurrency is None:
                args.concurrency = int(evaluation.get("max_concurrent", 5))
            if args.timeout is None:
                args.timeout = float(evaluation.get("timeout_seconds", 30))
        services = build_services(config=config)

        if args.command == "ingest":
            return asyncio.run(_handle_ingest(args, services))
        if args.command == "ask":
            return asyncio.run(_handle_ask(args, services))
        if args.command == "draft":
            return asyncio.run(_handle_draft(args, services))
        if args.command == "eval":
            return asyncio.run(_handle_eval(args, services))
        return asyncio.run(_handle_stats(services))
    except pydantic.ValidationError as exc:
        print(f"Error: invalid request: {exc}", file=sys.stderr)
        return 1
    except KnowledgeBaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())
