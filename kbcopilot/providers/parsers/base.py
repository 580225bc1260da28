"""Helpers shared by the file-format parsers."""

from __future__ import annotations

import asyncio
from pathlib import Path

from kbcopilot.utils.errors import DocumentParseError


async def read_text_file(path: Path, provider_name: str) -> str:
    """Read *path* as UTF-8 off the event loop.

    A leading byte-order mark is dropped.  Missing files, permission errors
    and undecodable bytes all surface as :class:`DocumentParseError`.
    """
    try:
        return await asyncio.to_thread(path.read_text, encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentParseError(
            message=f"Cannot read {path}: {exc}",
            provider_name=provider_name,
        ) from exc


def text_metadata(file_type: str, text: str) -> dict[str, str]:
    """Basic size statistics every text-like parser reports."""
    lines = text.splitlines()
    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    return {
        "file_type": file_type,
        "line_count": str(len(lines)),
        "word_count": str(len(text.split())),
        "paragraph_count": str(len(paragraphs)),
        "character_count": str(len(text)),
    }
