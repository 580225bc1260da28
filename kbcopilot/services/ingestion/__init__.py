from kbcopilot.services.ingestion.chunker import ChunkingEngine
from kbcopilot.services.ingestion.deduplicator import ChunkDeduplicator
from kbcopilot.services.ingestion.ingestion_service import IngestionService

__all__ = ["ChunkDeduplicator", "ChunkingEngine", "IngestionService"]
