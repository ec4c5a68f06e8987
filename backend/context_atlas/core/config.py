"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "CTXA_"
DEFAULT_CONFIG_PATH = Path("~/.config/context-atlas/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "api_key"): "embedding_api_key",
    ("embeddings", "timeout"): "embedding_timeout",
    ("fetch", "timeout"): "fetch_timeout",
    ("fetch", "max_bytes"): "fetch_max_bytes",
    ("fetch", "user_agent"): "fetch_user_agent",
    ("chunking", "max_chars"): "chunk_max_chars",
    ("chunking", "min_chars"): "chunk_min_chars",
    ("chunking", "batch_size"): "embed_batch_size",
    ("retrieval", "knowledge_limit"): "knowledge_search_limit",
    ("retrieval", "memory_min_similarity"): "memory_min_similarity",
    ("context", "seed_limit"): "context_seed_limit",
    ("context", "graph_max_depth"): "graph_max_depth",
    ("context", "page_limit"): "page_search_limit",
    ("context", "open_question_limit"): "open_question_limit",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".context-atlas" / "atlas.db")
    embedding_provider: Literal["hashed", "gemini"] = "hashed"
    embedding_model: str = "gemini-embedding-001"
    embedding_dim: int = Field(default=768, ge=1)
    embedding_api_key: str | None = None
    embedding_timeout: float = 60.0
    fetch_timeout: float = 30.0
    fetch_max_bytes: int = 5 * 1024 * 1024
    fetch_user_agent: str = "ContextAtlas-KnowledgeBot/1.0"
    chunk_max_chars: int = Field(default=1000, ge=1)
    chunk_min_chars: int = Field(default=100, ge=0)
    embed_batch_size: int = Field(default=5, ge=1)
    knowledge_search_limit: int = 5
    memory_min_similarity: float = 0.5
    context_seed_limit: int = 5
    graph_max_depth: int = 2
    page_search_limit: int = 10
    open_question_limit: int = 10

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @model_validator(mode="after")
    def _check_chunk_bounds(self) -> "Settings":
        if self.chunk_min_chars > self.chunk_max_chars:
            raise ValueError("chunk_min_chars must not exceed chunk_max_chars")
        return self

    def resolved_api_key(self) -> str | None:
        """Explicit key first, then the provider's conventional env var."""
        return self.embedding_api_key or os.environ.get("GEMINI_API_KEY")

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with CTXA_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
