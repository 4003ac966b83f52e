"""OpenAI-compatible chat completions (OpenRouter, OpenAI, llama.cpp server, etc.)."""

from __future__ import annotations

import json
import mimetypes
import os

import httpx

from memograph.errors import GenerationError
from memograph.llm.base import TokenCallback, encodeImage


class CompatGenerator:
    """Generation provider speaking the /chat/completions SSE stream."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        url: str = "https://openrouter.ai/api/v1",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._model = model
        self._api_key = (
            api_key or os.environ.get("OPENROUTER_API_KEY") or os.environ.get("OPENAI_API_KEY")
        )
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=url.rstrip("/"), headers=headers, timeout=timeout
        )

    @property
    def name(self) -> str:
        return f"compat/{self._model}"

    def _userContent(self, prompt: str, images: list[str] | None) -> str | list[dict]:
        if not images:
            return prompt
        content: list[dict] = [{"type": "text", "text": prompt}]
        for path in images:
            mime = mimetypes.guess_type(path)[0] or "image/png"
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime};base64,{encodeImage(path)}"},
                }
            )
        return content

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 512,
        on_token: TokenCallback | None = None,
        images: list[str] | None = None,
    ) -> str:
        try:
            messages: list[dict] = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": self._userContent(prompt, images)})
            payload = {
                "model": self._model,
                "messages": messages,
                "max_tokens": max_tokens,
                "stream": True,
            }
            parts: list[str] = []
            async with self._client.stream("POST", "/chat/completions", json=payload) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:") :].strip()
                    if data == "[DONE]":
                        break
                    chunk = json.loads(data)
                    if chunk.get("error"):
                        raise GenerationError(f"compat: {chunk['error']}")
                    for choice in chunk.get("choices", []):
                        token = (choice.get("delta") or {}).get("content") or ""
                        if token:
                            parts.append(token)
                            if on_token is not None:
                                on_token(token)
        except httpx.RequestError as e:
            raise GenerationError(f"Failed to connect to {self.name}: {e}") from e
        except httpx.HTTPStatusError as e:
            raise GenerationError(f"{self.name} request failed: {e}") from e
        except (OSError, ValueError) as e:
            raise GenerationError(f"{self.name} generation failed: {e}") from e
        return "".join(parts)
