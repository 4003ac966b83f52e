"""Config loading from ~/.memograph/config.json with env var overrides."""

from __future__ import annotations

import json
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_DIR = Path.home() / ".memograph"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_LOW_QUALITY_PATTERNS = [
    "user was added",
    "user joined",
    "user received invitation",
    "user's name is",
    "user's email",
    "notification",
    "reminder",
    "update available",
    "error occurred",
    "try again",
    "connection lost",
]


class ResolutionConfig(BaseModel):
    similarity_threshold: float = 0.75
    max_candidates: int = 3
    max_context_facts: int = 3
    context_snippet_chars: int = 200


class ContextConfig(BaseModel):
    top_k: int = 5
    min_similarity: float = 0.3
    recency_limit: int = 5
    max_context_tokens: int = 1500


class FilterConfig(BaseModel):
    min_length: int = 20
    low_quality_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_LOW_QUALITY_PATTERNS)
    )


class EmbeddingConfig(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="MEMOGRAPH_EMBEDDING_",
        extra="ignore",
    )
    provider: str = "auto"  # auto | ollama | compat
    api_url: str = "https://openrouter.ai/api/v1"
    api_key: str | None = None
    api_type: str = "openrouter"
    ollama_url: str = "http://localhost:11434"
    model: str = "nomic-embed-text"
    dimensions: int = 768


class GenerationConfig(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="MEMOGRAPH_GENERATION_",
        extra="ignore",
    )
    provider: str = "ollama"  # ollama | compat
    api_url: str = "http://localhost:11434"
    api_key: str | None = None
    model: str = "gemma3:4b"
    timeout: float = 120.0
    max_observation_tokens: int = 3000


class MemographConfig(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="MEMOGRAPH_",
        extra="ignore",
    )
    db_path: str = Field(default_factory=lambda: str(CONFIG_DIR / "memograph.db"))
    port: int = 7717
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    # Pipeline tuning
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    filter: FilterConfig = Field(default_factory=FilterConfig)


def loadConfig() -> MemographConfig:
    """Load config from ~/.memograph/config.json with env var overrides."""
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        return MemographConfig(**raw)
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = MemographConfig()
    CONFIG_PATH.write_text(config.model_dump_json(indent=2))
    return config
