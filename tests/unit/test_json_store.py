"""Unit tests for JsonVectorStore and the shared ranking helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from kbcopilot.models.rag import Embedding
from kbcopilot.providers.vector_store.base import cosine_scores, rank_candidates
from kbcopilot.providers.vector_store.json_store import JsonVectorStore
from kbcopilot.utils.errors import DimensionMismatchError, StoreUnavailableError, ValidationError
from tests.conftest import make_chunk


def _emb(chunk_id: str, vector: list[float], model: str = "m1") -> Embedding:
    return Embedding(chunk_id=chunk_id, vector=vector, model=model)


async def _seed(store: JsonVectorStore, vectors: dict[str, list[float]], model: str = "m1") -> None:
    items = []
    for chunk_id, vector in vectors.items():
        chunk = make_chunk(text=f"text of {chunk_id}", chunk_id=chunk_id)
        items.append((chunk, _emb(chunk_id, vector, model)))
    await store.upsert_batch(items)


class TestRankingHelpers:
    """Cosine scoring and the ordering contract."""

    def test_zero_vector_scores_zero(self) -> None:
        scores = cosine_scores([[0.0, 0.0], [1.0, 0.0]], [1.0, 0.0])
        assert scores[0] == 0.0
        assert scores[1] == pytest.approx(1.0)

    def test_ties_broken_by_ascending_id(self) -> None:
        candidates = [
            (make_chunk(chunk_id="b"), 0.5),
            (make_chunk(chunk_id="a"), 0.5),
            (make_chunk(chunk_id="c"), 0.9),
        ]
        results = rank_candidates(candidates, top_k=10, min_score=0.0)
        assert [r.chunk_id for r in results] == ["c", "a", "b"]

    def test_best_score_per_chunk_is_kept(self) -> None:
        chunk = make_chunk(chunk_id="x")
        results = rank_candidates([(chunk, 0.2), (chunk, 0.7)], top_k=5, min_score=0.0)
        assert len(results) == 1
        assert results[0].score == pytest.approx(0.7)


class TestSearch:
    """Search ordering, floors and limits."""

    @pytest.mark.asyncio
    async def test_results_sorted_and_floored(self, json_store: JsonVectorStore) -> None:
        await _seed(
            json_store,
            {
                "a": [1.0, 0.0, 0.0],
                "b": [0.8, 0.6, 0.0],
                "c": [0.0, 1.0, 0.0],
                "d": [-1.0, 0.0, 0.0],
            },
        )
        results = await json_store.search([1.0, 0.0, 0.0], top_k=10, min_score=0.5, model="m1")
        assert [r.chunk_id for r in results] == ["a", "b"]
        assert all(r.score >= 0.5 for r in results)
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_top_k_limits_results(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {f"c{i}": [1.0, float(i)] for i in range(6)})
        results = await json_store.search([1.0, 0.0], top_k=3, min_score=-1.0)
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_non_positive_top_k_returns_empty(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0]})
        assert await json_store.search([1.0, 0.0], top_k=0) == []

    @pytest.mark.asyncio
    async def test_empty_store_returns_empty(self, json_store: JsonVectorStore) -> None:
        assert await json_store.search([1.0, 0.0], top_k=5) == []

    @pytest.mark.asyncio
    async def test_identical_scores_order_by_id(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"zeta": [1.0, 0.0], "alpha": [2.0, 0.0], "mid": [3.0, 0.0]})
        results = await json_store.search([1.0, 0.0], top_k=3)
        assert [r.chunk_id for r in results] == ["alpha", "mid", "zeta"]

    @pytest.mark.asyncio
    async def test_search_without_model_uses_matching_dimension(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0]}, model="small")
        await _seed(json_store, {"b": [1.0, 0.0, 0.0]}, model="large")
        results = await json_store.search([1.0, 0.0, 0.0], top_k=5)
        assert [r.chunk_id for r in results] == ["b"]


class TestDimensions:
    """One vector length per embedding model."""

    @pytest.mark.asyncio
    async def test_upsert_wrong_length_rejected(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0, 0.0]})
        with pytest.raises(DimensionMismatchError) as exc_info:
            await json_store.upsert(make_chunk(chunk_id="b"), _emb("b", [1.0, 0.0]))
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    @pytest.mark.asyncio
    async def test_bad_batch_leaves_no_partial_write(self, json_store: JsonVectorStore) -> None:
        items = [
            (make_chunk(chunk_id="a", text="one"), _emb("a", [1.0, 0.0])),
            (make_chunk(chunk_id="b", text="two"), _emb("b", [1.0, 0.0, 0.0])),
        ]
        with pytest.raises(DimensionMismatchError):
            await json_store.upsert_batch(items)
        assert await json_store.count() == 0

    @pytest.mark.asyncio
    async def test_embedding_for_another_chunk_rejected(self, json_store: JsonVectorStore) -> None:
        with pytest.raises(ValidationError, match="given with chunk a") as exc_info:
            await json_store.upsert(make_chunk(chunk_id="a"), _emb("b", [1.0, 0.0]))
        assert exc_info.value.provider_name == json_store.get_provider_name()
        assert await json_store.count() == 0

    @pytest.mark.asyncio
    async def test_query_with_wrong_length_for_model(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0, 0.0]})
        with pytest.raises(DimensionMismatchError):
            await json_store.search([1.0, 0.0], model="m1")

    @pytest.mark.asyncio
    async def test_query_matching_no_model(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0, 0.0]})
        with pytest.raises(DimensionMismatchError):
            await json_store.search([1.0, 0.0])

    @pytest.mark.asyncio
    async def test_second_model_may_use_other_dimension(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0, 0.0]}, model="m1")
        chunk = await json_store.get_by_id("a")
        await json_store.upsert(chunk, _emb("a", [0.0, 1.0], model="m2"))
        assert await json_store.count() == 1
        results = await json_store.search([0.0, 1.0], model="m2")
        assert results[0].chunk_id == "a"


class TestLifecycle:
    """Counts, deletes, hashes and persistence."""

    @pytest.mark.asyncio
    async def test_upsert_overwrites_same_id(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0]})
        await json_store.upsert(make_chunk(chunk_id="a", text="updated"), _emb("a", [0.0, 1.0]))
        assert await json_store.count() == 1
        stored = await json_store.get_by_id("a")
        assert stored is not None and stored.text == "updated"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, json_store: JsonVectorStore) -> None:
        await _seed(json_store, {"a": [1.0, 0.0], "b": [0.0, 1.0]})
        assert await json_store.delete("a") is True
        assert await json_store.delete("a") is False
        assert await json_store.get_by_id("a") is None
        assert await json_store.clear() == 1
        assert await json_store.count() == 0

    @pytest.mark.asyncio
    async def test_list_hashes(self, json_store: JsonVectorStore) -> None:
        chunk = make_chunk(text="Lock out, tag out.", chunk_id="a")
        await json_store.upsert(chunk, _emb("a", [1.0, 0.0]))
        assert await json_store.list_hashes() == {chunk.hash}

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "store" / "vectors.json"
        first = JsonVectorStore(path=path)
        await _seed(first, {"a": [1.0, 0.0], "b": [0.0, 1.0]})
        assert path.exists()

        second = JsonVectorStore(path=path)
        await second.initialize()
        assert await second.count() == 2
        results = await second.search([1.0, 0.0], top_k=1, model="m1")
        assert results[0].chunk_id == "a"

    @pytest.mark.asyncio
    async def test_corrupt_file_is_unavailable(self, tmp_path: Path) -> None:
        path = tmp_path / "vectors.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonVectorStore(path=path)
        with pytest.raises(StoreUnavailableError):
            await store.initialize()
        assert await store.health_check() is False

    def test_exact_store_has_zero_tolerance(self, json_store: JsonVectorStore) -> None:
        assert json_store.score_tolerance == 0.0
