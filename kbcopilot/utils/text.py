"""Text helpers shared by chunking, dedup, prompt building and auditing.

Everything here is pure and deterministic: the same input always produces
the same normalized text, digest and token estimate.  The content hash is
the dedup identity of a chunk, so :func:`normalize_text` must never change
behaviour silently (it would invalidate every stored hash).
"""

from __future__ import annotations

import hashlib
import math
import re

_HORIZONTAL_WS = re.compile(r"[ \t\f\v ]+")
_TRAILING_WS = re.compile(r" +\n")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_WORD = re.compile(r"\S+")
_TERM = re.compile(r"[a-z0-9]+")

# Short function words ignored by the lexical overlap signal.
_STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "do", "does", "for",
        "from", "how", "i", "in", "is", "it", "of", "on", "or", "that", "the",
        "this", "to", "was", "what", "when", "where", "which", "who", "why",
        "with", "you",
    }
)


def normalize_text(text: str) -> str:
    """Canonical form used before chunking and hashing.

    CRLF/CR become LF, runs of horizontal whitespace collapse to one space,
    spaces before a newline are removed, three or more newlines collapse to
    a paragraph break, and the result is stripped.
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _TRAILING_WS.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def sha256_hex(text: str) -> str:
    """SHA-256 hex digest of *text* as-is (prompt digests, cache keys)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def estimate_tokens(text: str) -> int:
    """Rough token count: words x 4/3, rounded up.  Empty text is 0 tokens."""
    if not text:
        return 0
    return math.ceil(len(_WORD.findall(text)) * 4 / 3)


def key_terms(text: str) -> set[str]:
    """Lower-cased alphanumeric terms with stopwords removed."""
    return {t for t in _TERM.findall(text.lower()) if t not in _STOPWORDS}


def truncate(text: str, limit: int = 200) -> str:
    """Cut *text* to *limit* characters, appending ``...`` when shortened."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
