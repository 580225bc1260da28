"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Layers, later ones override earlier ones:
#
#   1. config/config.yaml  - defaults checked into the repo
#   2. .env file           - local overrides (not committed)
#   3. Environment vars    - set at deploy time
#
# load_config() reads the YAML first, then deep-merges the values the
# Settings object actually received from .env / the environment.
#
# The section helpers below (chunking_options, governance_policy, ...)
# turn the merged dict into the typed objects the services take.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from kbcopilot.config.settings import Settings
from kbcopilot.models.evaluation import EvaluationTargets
from kbcopilot.models.governance import RedactionOptions, RedactionRule
from kbcopilot.models.rag import ChunkingOptions
from kbcopilot.services.governance.policy import GovernancePolicy
from kbcopilot.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge the explicitly set environment Settings over it.

    Args:
        path: Path to the YAML configuration file.  A missing file yields
              an empty base (code defaults apply).
        settings: Settings instance to merge; built from the environment
                  when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML is malformed.
    """
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(message=f"Invalid YAML in {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    settings = settings or Settings()
    _deep_merge(yaml_config, _env_overrides(settings))
    return yaml_config


def _env_overrides(settings: Settings) -> dict[str, Any]:
    """Map set Settings fields onto their config sections."""
    mapping: dict[str, tuple[str, str]] = {
        "openai_api_key": ("providers", "openai_api_key"),
        "openai_base_url": ("providers", "openai_base_url"),
        "openai_generation_model": ("providers", "openai_generation_model"),
        "openai_embedding_model": ("providers", "openai_embedding_model"),
        "anthropic_api_key": ("providers", "anthropic_api_key"),
        "anthropic_model": ("providers", "anthropic_model"),
        "vector_store_type": ("vector_store", "type"),
        "vector_store_path": ("vector_store", "path"),
        "chromadb_persist_dir": ("vector_store", "persist_directory"),
        "chromadb_collection": ("vector_store", "collection"),
        "database_url": ("vector_store", "database_url"),
        "pinecone_api_key": ("vector_store", "pinecone_api_key"),
        "pinecone_index": ("vector_store", "index_name"),
        "audit_db_path": ("audit", "db_path"),
        "app_env": ("app", "env"),
        "log_level": ("logging", "level"),
    }
    overrides: dict[str, Any] = {
        "providers": {"available_generation": settings.get_available_generation_providers()},
    }
    for field_name in settings.model_fields_set:
        if field_name in mapping:
            section, key = mapping[field_name]
            overrides.setdefault(section, {})[key] = getattr(settings, field_name)
    return overrides


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


# ---------------------------------------------------------------------------
# Typed section accessors
# ---------------------------------------------------------------------------

def chunking_options(config: dict) -> ChunkingOptions:
    section = config.get("chunking", {}) or {}
    return ChunkingOptions(**{k: v for k, v in section.items() if k in ChunkingOptions.model_fields})


def redaction_options(config: dict) -> RedactionOptions:
    section = (config.get("governance", {}) or {}).get("redaction", {}) or {}
    preset = str(section.get("preset", "default")).lower()
    presets = {
        "default": RedactionOptions.default,
        "conservative": RedactionOptions.conservative,
        "aggressive": RedactionOptions.aggressive,
    }
    if preset not in presets:
        raise ConfigurationError(message=f"Unknown redaction preset '{preset}'")
    rules = [RedactionRule(**rule) for rule in section.get("custom_rules", []) or []]
    return presets[preset]().model_copy(update={"custom_rules": rules})


def governance_policy(config: dict) -> GovernancePolicy:
    section = dict((config.get("governance", {}) or {}).get("policy", {}) or {})
    return GovernancePolicy(**{k: v for k, v in section.items() if k in GovernancePolicy.model_fields})


def retrieval_settings(config: dict) -> dict[str, Any]:
    section = config.get("retrieval", {}) or {}
    return {
        "min_score": float(section.get("min_score", 0.0)),
        "cache_ttl_seconds": int(section.get("cache_ttl_seconds", 300)),
        "cache_max_size": int(section.get("cache_max_size", 1024)),
    }


def evaluation_targets(config: dict) -> EvaluationTargets:
    section = (config.get("evaluation", {}) or {}).get("targets", {}) or {}
    return EvaluationTargets(**{k: v for k, v in section.items() if k in EvaluationTargets.model_fields})
