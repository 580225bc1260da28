"""Vector store provider implementations.

Four implementations of IVectorStoreProvider:
    1. JsonVectorStore   - exact, in-process, persisted to one JSON file.
    2. ChromaDBProvider  - local HNSW index, exact re-scoring of candidates.
    3. PgVectorProvider  - PostgreSQL + pgvector, exact SQL scan.
    4. PineconeProvider  - managed cloud index.

Only the JSON store is re-exported here; the others pull in their client
libraries and are imported by VectorStoreFactory when selected.
"""

from kbcopilot.providers.vector_store.factory import VectorStoreFactory
from kbcopilot.providers.vector_store.json_store import JsonVectorStore

__all__ = ["JsonVectorStore", "VectorStoreFactory"]
