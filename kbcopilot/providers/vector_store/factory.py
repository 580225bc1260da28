"""Builds the configured vector-store backend.

The backend is chosen once, at startup, from ``vector_store.type``.  Each
backend's client library is imported only when that backend is selected,
so a JSON-only deployment never loads chromadb, SQLAlchemy or pinecone.
"""

from __future__ import annotations

from typing import Any

import structlog

from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

SUPPORTED_TYPES: tuple[str, ...] = ("json", "chromadb", "pgvector", "postgres", "pinecone")


class VectorStoreFactory:
    """Maps a ``vector_store`` config section onto one provider instance."""

    @staticmethod
    def create(section: dict[str, Any], dimension: int | None = None) -> IVectorStoreProvider:
        """Instantiate the backend named by ``section["type"]``.

        Parameters
        ----------
        section:
            The ``vector_store`` config section.
        dimension:
            Embedding dimension; used for the Pinecone index when the section
            does not set one.

        Raises
        ------
        ConfigurationError
            If the type is unknown or a required setting is missing.
        """
        store_type = str(section.get("type", "json")).strip().lower()

        if store_type == "json":
            from kbcopilot.providers.vector_store.json_store import JsonVectorStore

            store: IVectorStoreProvider = JsonVectorStore(path=section.get("path") or None)

        elif store_type == "chromadb":
            from kbcopilot.providers.vector_store.chromadb_provider import ChromaDBProvider

            store = ChromaDBProvider(
                persist_directory=section.get("persist_directory", "./data/chromadb"),
                collection_name=section.get("collection", "kbcopilot"),
            )

        elif store_type in ("pgvector", "postgres"):
            database_url = section.get("database_url", "")
            if not database_url:
                raise ConfigurationError(
                    message="vector_store.database_url (DATABASE_URL) is required for pgvector",
                    provider_name="pgvector",
                )
            from kbcopilot.providers.vector_store.pgvector_provider import PgVectorProvider

            store = PgVectorProvider(database_url=database_url)

        elif store_type == "pinecone":
            api_key = section.get("pinecone_api_key", "")
            if not api_key:
                raise ConfigurationError(
                    message="vector_store.pinecone_api_key (PINECONE_API_KEY) is required for pinecone",
                    provider_name="pinecone",
                )
            from kbcopilot.providers.vector_store.pinecone_provider import PineconeProvider

            store = PineconeProvider(
                api_key=api_key,
                index_name=section.get("index_name", "kbcopilot"),
                dimension=int(section.get("dimension") or dimension or 1536),
                cloud=section.get("cloud", "aws"),
                region=section.get("region", "us-east-1"),
            )

        else:
            raise ConfigurationError(
                message=(
                    f"Unknown vector store type '{store_type}'; "
                    f"expected one of {', '.join(SUPPORTED_TYPES)}"
                ),
            )

        logger.info("vector_store_selected", type=store_type, provider=store.get_provider_name())
        return store
