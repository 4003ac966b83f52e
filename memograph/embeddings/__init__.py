"""Embedding providers: ollama, openai-compat."""

from memograph.embeddings.base import EmbeddingProvider
from memograph.embeddings.factory import createProvider

__all__ = ["EmbeddingProvider", "createProvider"]
