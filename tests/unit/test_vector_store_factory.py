"""Unit tests for VectorStoreFactory backend selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from kbcopilot.providers.vector_store.chromadb_provider import ChromaDBProvider
from kbcopilot.providers.vector_store.factory import VectorStoreFactory
from kbcopilot.providers.vector_store.json_store import JsonVectorStore
from kbcopilot.utils.errors import ConfigurationError


class TestVectorStoreFactory:
    def test_json_is_default(self) -> None:
        store = VectorStoreFactory.create({})
        assert isinstance(store, JsonVectorStore)
        assert store.get_provider_name() == "json"

    def test_json_with_path(self, tmp_path: Path) -> None:
        store = VectorStoreFactory.create({"type": "JSON", "path": str(tmp_path / "v.json")})
        assert isinstance(store, JsonVectorStore)

    def test_chromadb(self, tmp_path: Path) -> None:
        store = VectorStoreFactory.create({"type": "chromadb", "persist_directory": str(tmp_path)})
        assert isinstance(store, ChromaDBProvider)

    def test_pgvector_requires_database_url(self) -> None:
        with pytest.raises(ConfigurationError, match="database_url"):
            VectorStoreFactory.create({"type": "pgvector"})

    def test_pinecone_requires_api_key(self) -> None:
        with pytest.raises(ConfigurationError, match="pinecone_api_key"):
            VectorStoreFactory.create({"type": "pinecone"})

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown vector store type"):
            VectorStoreFactory.create({"type": "faiss"})
