"""Ollama text generation via the streaming /api/generate endpoint."""

from __future__ import annotations

import json

import httpx

from memograph.errors import GenerationError
from memograph.llm.base import TokenCallback, encodeImage


class OllamaGenerator:
    """Generation provider using Ollama's local API (NDJSON stream)."""

    def __init__(
        self,
        model: str = "gemma3:4b",
        url: str = "http://localhost:11434",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._model = model
        self._url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self._url, timeout=timeout)

    @property
    def name(self) -> str:
        return f"ollama/{self._model}"

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 512,
        on_token: TokenCallback | None = None,
        images: list[str] | None = None,
    ) -> str:
        payload: dict = {
            "model": self._model,
            "prompt": prompt,
            "stream": True,
            "options": {"num_predict": max_tokens},
        }
        if system_prompt:
            payload["system"] = system_prompt
        try:
            if images:
                payload["images"] = [encodeImage(p) for p in images]
            parts: list[str] = []
            async with self._client.stream("POST", "/api/generate", json=payload) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    chunk = json.loads(line)
                    if chunk.get("error"):
                        raise GenerationError(f"ollama: {chunk['error']}")
                    token = chunk.get("response", "")
                    if token:
                        parts.append(token)
                        if on_token is not None:
                            on_token(token)
                    if chunk.get("done"):
                        break
        except httpx.RequestError as e:
            raise GenerationError(f"Failed to connect to Ollama: {e}") from e
        except httpx.HTTPStatusError as e:
            raise GenerationError(f"Ollama request failed: {e}") from e
        except (OSError, ValueError) as e:
            raise GenerationError(f"Ollama generation failed: {e}") from e
        return "".join(parts)
