"""Embedding provider factory with auto-detection fallback chain."""

from __future__ import annotations

import logging

from memograph.config import EmbeddingConfig
from memograph.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


async def createProvider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Create embedding provider from config. Auto falls back: ollama → compat → error."""
    provider = config.provider.lower()

    if provider == "ollama":
        return await _tryOllama(config)
    elif provider == "compat":
        return _createCompat(config)
    else:
        return await _autoDetect(config)


async def _tryOllama(config: EmbeddingConfig) -> EmbeddingProvider:
    from memograph.embeddings.ollama import OllamaProvider

    p = OllamaProvider(model=config.model, dimensions=config.dimensions, url=config.ollama_url)
    if await p.healthCheck():
        logger.info("Using Ollama provider: %s", p.name)
        return p  # type: ignore[return-value]
    raise ConnectionError(
        f"Ollama not reachable at {config.ollama_url} or model '{config.model}' not found"
    )


def _createCompat(config: EmbeddingConfig) -> EmbeddingProvider:
    from memograph.embeddings.compat import CompatProvider

    p = CompatProvider(
        model=config.model,
        api_key=config.api_key,
        dimensions=config.dimensions,
        url=config.api_url,
        api_type=config.api_type,
    )
    logger.info("Using compat provider (%s): %s", config.api_type, p.name)
    return p  # type: ignore[return-value]


async def _autoDetect(config: EmbeddingConfig) -> EmbeddingProvider:
    try:
        return await _tryOllama(config)
    except ConnectionError:
        logger.info("Ollama not available, trying compat embeddings...")

    try:
        return _createCompat(config)
    except ValueError:
        pass

    raise RuntimeError(
        "No embedding provider available. Start Ollama or set MEMOGRAPH_EMBEDDING_API_KEY."
    )
