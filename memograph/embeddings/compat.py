"""OpenAI-compatible embeddings provider (OpenRouter, OpenAI, etc.)."""

from __future__ import annotations

import os

import httpx

from memograph.errors import EmbeddingError


class CompatProvider:
    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        dimensions: int = 1536,
        url: str = "https://openrouter.ai/api/v1",
        api_type: str = "openrouter",
        client: httpx.AsyncClient | None = None,
    ):
        self._model = model
        self._dimensions = dimensions
        self._api_type = api_type
        self._api_key = (
            api_key or os.environ.get("OPENROUTER_API_KEY") or os.environ.get("OPENAI_API_KEY")
        )
        if not self._api_key:
            raise ValueError(
                "API key required: set OPENROUTER_API_KEY, OPENAI_API_KEY, or config.embedding.api_key"  # noqa: E501
            )
        self._client = client or httpx.AsyncClient(
            base_url=url.rstrip("/"),
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=60.0,
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def name(self) -> str:
        return f"{self._api_type}/{self._model}"

    async def embed(self, texts: list[str]) -> list[list[float]]:
        try:
            resp = await self._client.post(
                "/embeddings", json={"model": self._model, "input": texts}
            )
            resp.raise_for_status()
            items = sorted(resp.json()["data"], key=lambda x: x["index"])
            embeddings = [item["embedding"] for item in items]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(f"{self._api_type} embed failed: {e}") from e
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"{self._api_type} embed failed: expected {len(texts)} vectors, "
                f"got {len(embeddings)}"
            )
        return embeddings

    async def embedOne(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]
