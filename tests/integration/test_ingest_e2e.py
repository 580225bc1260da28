"""End-to-end ingestion over real parsers, chunking and the JSON store.

Only the embedding model is faked.  Files are written to ``tmp_path`` and
the store persists to a JSON file there, so a second service instance sees
what the first one wrote.
"""

from __future__ import annotations

import hashlib
import zipfile
from pathlib import Path

import pytest

from kbcopilot.models.rag import FileStatus, IngestStatus
from kbcopilot.models.requests import IngestRequest
from kbcopilot.providers.parsers import ParserRegistry
from kbcopilot.providers.vector_store.json_store import JsonVectorStore
from kbcopilot.services.ingestion import IngestionService
from kbcopilot.utils.errors import UnsupportedOperationError, ValidationError
from tests.conftest import FakeEmbeddingProvider, hash_to_vector

pytestmark = pytest.mark.integration

# 420 characters without delimiters, chunk_size 100, overlap 20 -> 5 chunks.
_DOC_LENGTH = 420


def _hex_text(seed: str, length: int = _DOC_LENGTH) -> str:
    blocks = [hashlib.sha256(f"{seed}-{n}".encode()).hexdigest() for n in range(length // 64 + 1)]
    return "".join(blocks)[:length]


def _service(store: JsonVectorStore, embedding: FakeEmbeddingProvider | None = None) -> IngestionService:
    return IngestionService(
        parsers=ParserRegistry.default(),
        embedding_provider=embedding or FakeEmbeddingProvider(),
        vector_store=store,
        max_parallel_files=2,
        batch_size=4,
    )


def _request(path: Path, **kwargs) -> IngestRequest:
    return IngestRequest(path=str(path), chunk_size=100, chunk_overlap=20, **kwargs)


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    docs = tmp_path / "docs"
    docs.mkdir()
    for name in ("a", "b", "c"):
        (docs / f"{name}.txt").write_text(_hex_text(name), encoding="utf-8")
    return docs


@pytest.fixture
def store(tmp_path: Path) -> JsonVectorStore:
    return JsonVectorStore(path=tmp_path / "store" / "vectors.json")


class TestIncrementalIngest:
    """Re-ingesting the same corpus stores nothing new."""

    @pytest.mark.asyncio
    async def test_first_and_second_run(self, corpus: Path, store: JsonVectorStore, tmp_path: Path) -> None:
        first = await _service(store).ingest(_request(corpus))

        assert first.status is IngestStatus.SUCCESS
        assert (first.processed_files, first.generated_chunks, first.skipped_duplicates) == (3, 15, 0)
        assert first.unique_hashes == 15
        assert all(f.chunk_count == 5 for f in first.per_file)

        # A fresh store instance reads the persisted file.
        reopened = JsonVectorStore(path=tmp_path / "store" / "vectors.json")
        second = await _service(reopened).ingest(_request(corpus))

        assert second.status is IngestStatus.SUCCESS
        assert (second.generated_chunks, second.skipped_duplicates) == (0, 15)
        assert await reopened.count() == 15

    @pytest.mark.asyncio
    async def test_rebuild_clears_first(self, corpus: Path, store: JsonVectorStore) -> None:
        service = _service(store)
        await service.ingest(_request(corpus))

        rebuilt = await service.ingest(_request(corpus, rebuild_index=True))

        assert (rebuilt.generated_chunks, rebuilt.skipped_duplicates) == (15, 0)
        assert await store.count() == 15

    @pytest.mark.asyncio
    async def test_duplicate_files_in_one_batch(self, corpus: Path, store: JsonVectorStore) -> None:
        (corpus / "copy_of_a.txt").write_text(_hex_text("a"), encoding="utf-8")

        report = await _service(store).ingest(_request(corpus))

        assert report.generated_chunks == 15
        assert report.skipped_duplicates == 5
        assert report.unique_hashes == 15


class TestEnumeration:
    @pytest.mark.asyncio
    async def test_zip_archive(self, tmp_path: Path, store: JsonVectorStore) -> None:
        archive = tmp_path / "policies.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("handbook/ppe.md", "# PPE\n\nHard hats are required in the yard.")
            zf.writestr("handbook/notes.bin", "ignored")

        report = await _service(store).ingest(_request(archive))

        assert report.processed_files == 1
        assert report.per_file[0].file_path == str(archive / "handbook" / "ppe.md")
        hits = await store.search(hash_to_vector("Hard hats are required in the yard."), 1, 0.0)
        assert hits[0].chunk.source_path.startswith(str(archive))
        assert hits[0].chunk.section == "PPE"

    @pytest.mark.asyncio
    async def test_empty_directory(self, tmp_path: Path, store: JsonVectorStore) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()

        report = await _service(store).ingest(_request(empty))

        assert report.status is IngestStatus.SUCCESS
        assert report.processed_files == 0
        assert report.per_file == []

    @pytest.mark.asyncio
    async def test_unsupported_single_file(self, tmp_path: Path, store: JsonVectorStore) -> None:
        path = tmp_path / "diagram.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(UnsupportedOperationError):
            await _service(store).ingest(_request(path))


class TestPartialFailure:
    """One file's embedding failure is reported, not raised."""

    @pytest.mark.asyncio
    async def test_failed_file_is_reported_and_retryable(self, corpus: Path, store: JsonVectorStore) -> None:
        (corpus / "poison.txt").write_text("POISON short document", encoding="utf-8")

        report = await _service(store, FakeEmbeddingProvider(fail_on="POISON")).ingest(_request(corpus))

        assert report.status is IngestStatus.PARTIAL_SUCCESS
        assert (report.processed_files, report.failed_files) == (3, 1)
        assert report.generated_chunks == 15
        failed = [f for f in report.per_file if f.status is FileStatus.FAILED]
        assert [f.file_name for f in failed] == ["poison.txt"]
        assert report.errors == [f"File {corpus / 'poison.txt'}: embedding refused"]

        # The failed file's hash was released, so a later run picks it up.
        retry = await _service(store).ingest(_request(corpus))
        assert retry.status is IngestStatus.SUCCESS
        assert (retry.generated_chunks, retry.skipped_duplicates) == (1, 15)

    @pytest.mark.asyncio
    async def test_every_file_failing(self, tmp_path: Path, store: JsonVectorStore) -> None:
        docs = tmp_path / "bad"
        docs.mkdir()
        (docs / "one.txt").write_text("POISON one", encoding="utf-8")
        (docs / "two.md").write_text("POISON two", encoding="utf-8")

        report = await _service(store, FakeEmbeddingProvider(fail_on="POISON")).ingest(_request(docs))

        assert report.status is IngestStatus.FAILED
        assert report.processed_files == 0
        assert len(report.errors) == 2
        assert await store.count() == 0


class TestRebuildGuard:
    """A rebuild request with an unusable path leaves the store untouched."""

    @pytest.mark.asyncio
    async def test_bad_zip_keeps_existing_chunks(self, corpus: Path, store: JsonVectorStore, tmp_path: Path) -> None:
        await _service(store).ingest(_request(corpus / "a.txt"))
        assert await store.count() == 5
        broken = tmp_path / "broken.zip"
        broken.write_bytes(b"not a zip archive")

        with pytest.raises(ValidationError, match="Invalid zip"):
            await _service(store).ingest(_request(broken, rebuild_index=True))

        assert await store.count() == 5

    @pytest.mark.asyncio
    async def test_unsupported_file_keeps_existing_chunks(
        self, corpus: Path, store: JsonVectorStore, tmp_path: Path
    ) -> None:
        await _service(store).ingest(_request(corpus / "a.txt"))
        image = tmp_path / "image.png"
        image.write_bytes(b"\x89PNG")

        with pytest.raises(UnsupportedOperationError):
            await _service(store).ingest(_request(image, rebuild_index=True))

        assert await store.count() == 5
