"""Text generation providers: ollama, openai-compat."""

from memograph.llm.base import GenerationProvider, TokenCallback
from memograph.llm.factory import createGenerator

__all__ = ["GenerationProvider", "TokenCallback", "createGenerator"]
