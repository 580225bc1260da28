"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Two sources, in priority order:
#
#   1. Environment variables - e.g. OPENAI_API_KEY=sk-abc123 (always wins)
#   2. .env file in the working directory (local development)
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Only fields
# that were actually set (env or .env) override config/config.yaml; the
# defaults below apply when neither source sets a value.
#
# Secrets (API keys, DATABASE_URL) belong here, never in config.yaml.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """kbcopilot deploy-time settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Model providers ===
    # Empty string = "not configured"; main.py falls back to local providers.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_generation_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = ""

    # === Vector store ===
    vector_store_type: str = "json"  # json | chromadb | pgvector | postgres | pinecone
    vector_store_path: str = "data/vector_store.json"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "kbcopilot"
    database_url: str = ""
    pinecone_api_key: str = ""
    pinecone_index: str = "kbcopilot"

    # === Audit ===
    audit_db_path: str = "data/audit.db"

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_generation_providers(self) -> list[str]:
        """Return the generation providers that have an API key configured."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        return providers
