"""Content-hash deduplication for one ingestion run."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable


class ChunkDeduplicator:
    """Set of chunk hashes claimed during an ingestion scope.

    Files are processed concurrently, so every check-and-add happens under
    one lock: exactly one caller wins a given hash no matter the order in
    which files finish.  Hashes already in the store are added with
    :meth:`seed` before processing starts.
    """

    def __init__(self, hashes: Iterable[str] = ()) -> None:
        self._seen: set[str] = set(hashes)
        self._lock = asyncio.Lock()

    async def claim(self, content_hash: str) -> bool:
        """Return ``True`` if *content_hash* was new and is now claimed."""
        async with self._lock:
            if content_hash in self._seen:
                return False
            self._seen.add(content_hash)
            return True

    async def release(self, content_hash: str) -> None:
        """Give back a claimed hash whose chunk never made it into the store."""
        async with self._lock:
            self._seen.discard(content_hash)

    async def release_all(self, hashes: Iterable[str]) -> None:
        async with self._lock:
            self._seen.difference_update(hashes)

    async def seed(self, hashes: Iterable[str]) -> None:
        async with self._lock:
            self._seen.update(hashes)

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, content_hash: object) -> bool:
        return content_hash in self._seen
