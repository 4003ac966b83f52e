"""Generation provider factory."""

from __future__ import annotations

import logging

from memograph.config import GenerationConfig
from memograph.llm.base import GenerationProvider

logger = logging.getLogger(__name__)


def createGenerator(config: GenerationConfig) -> GenerationProvider:
    """Create generation provider from config (`ollama` | `compat`)."""
    provider = config.provider.lower()

    if provider == "ollama":
        from memograph.llm.ollama import OllamaGenerator

        g = OllamaGenerator(model=config.model, url=config.api_url, timeout=config.timeout)
    elif provider == "compat":
        from memograph.llm.compat import CompatGenerator

        g = CompatGenerator(
            model=config.model,
            api_key=config.api_key,
            url=config.api_url,
            timeout=config.timeout,
        )
    else:
        raise ValueError(f"Unknown generation provider: {config.provider}")
    logger.info("Using generation provider: %s", g.name)
    return g  # type: ignore[return-value]
