"""Tests for generation providers."""

from __future__ import annotations

import base64
import json
from pathlib import Path

import httpx
import pytest

from memograph.config import GenerationConfig
from memograph.errors import GenerationError
from memograph.llm import GenerationProvider, createGenerator
from memograph.llm.compat import CompatGenerator
from memograph.llm.ollama import OllamaGenerator
from tests.conftest import FakeGenerator


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


def _ndjson(*chunks: dict) -> bytes:
    return "\n".join(json.dumps(c) for c in chunks).encode()


def _sse(*chunks: dict | str) -> bytes:
    lines = []
    for c in chunks:
        data = c if isinstance(c, str) else json.dumps(c)
        lines.append(f"data: {data}\n")
    return "\n".join(lines).encode()


class TestProtocol:
    def test_implementationsConform(self):
        assert isinstance(OllamaGenerator(), GenerationProvider)
        assert isinstance(CompatGenerator(model="m", api_key="k"), GenerationProvider)
        assert isinstance(FakeGenerator(), GenerationProvider)


# -- OllamaGenerator --


class TestOllamaGenerator:
    @pytest.mark.asyncio
    async def test_streamsTokens(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/generate"
            seen.append(json.loads(request.content))
            body = _ndjson(
                {"response": "Hello", "done": False},
                {"response": " there", "done": False},
                {"response": "", "done": True},
            )
            return httpx.Response(200, content=body)

        g = OllamaGenerator(model="gemma3:4b", client=_client(handler))
        tokens: list[str] = []
        text = await g.complete(
            "hi", system_prompt="be nice", max_tokens=50, on_token=tokens.append
        )

        assert text == "Hello there"
        assert tokens == ["Hello", " there"]
        payload = seen[0]
        assert payload["model"] == "gemma3:4b"
        assert payload["system"] == "be nice"
        assert payload["stream"] is True
        assert payload["options"] == {"num_predict": 50}
        assert "images" not in payload

    @pytest.mark.asyncio
    async def test_imagesBase64(self, tmp_path: Path):
        image = tmp_path / "shot.png"
        image.write_bytes(b"\x89PNG fake")
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, content=_ndjson({"response": "ok", "done": True}))

        g = OllamaGenerator(client=_client(handler))
        await g.complete("describe", images=[str(image)])
        assert seen[0]["images"] == [base64.b64encode(b"\x89PNG fake").decode()]

    @pytest.mark.asyncio
    async def test_httpStatusError(self):
        g = OllamaGenerator(client=_client(lambda r: httpx.Response(500, text="boom")))
        with pytest.raises(GenerationError):
            await g.complete("hi")

    @pytest.mark.asyncio
    async def test_connectError(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        g = OllamaGenerator(client=_client(handler))
        with pytest.raises(GenerationError, match="Failed to connect"):
            await g.complete("hi")

    @pytest.mark.asyncio
    async def test_streamErrorField(self):
        body = _ndjson({"error": "model not found"})
        g = OllamaGenerator(client=_client(lambda r: httpx.Response(200, content=body)))
        with pytest.raises(GenerationError, match="model not found"):
            await g.complete("hi")

    @pytest.mark.asyncio
    async def test_missingImage(self, tmp_path: Path):
        g = OllamaGenerator(client=_client(lambda r: httpx.Response(200)))
        with pytest.raises(GenerationError):
            await g.complete("hi", images=[str(tmp_path / "missing.png")])


# -- CompatGenerator --


class TestCompatGenerator:
    @pytest.mark.asyncio
    async def test_streamsSse(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/chat/completions"
            seen.append(json.loads(request.content))
            body = _sse(
                {"choices": [{"delta": {"role": "assistant"}}]},
                {"choices": [{"delta": {"content": "Sure"}}]},
                {"choices": [{"delta": {"content": "!"}}]},
                "[DONE]",
            )
            return httpx.Response(200, content=body)

        g = CompatGenerator(model="gpt-4o-mini", api_key="k", client=_client(handler))
        tokens: list[str] = []
        text = await g.complete("hi", system_prompt="sys", on_token=tokens.append)

        assert text == "Sure!"
        assert tokens == ["Sure", "!"]
        messages = seen[0]["messages"]
        assert messages[0] == {"role": "system", "content": "sys"}
        assert messages[1] == {"role": "user", "content": "hi"}
        assert seen[0]["stream"] is True

    @pytest.mark.asyncio
    async def test_imagesAsDataUrls(self, tmp_path: Path):
        image = tmp_path / "shot.png"
        image.write_bytes(b"img")
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, content=_sse("[DONE]"))

        g = CompatGenerator(model="m", api_key="k", client=_client(handler))
        await g.complete("describe", images=[str(image)])
        content = seen[0]["messages"][-1]["content"]
        assert content[0] == {"type": "text", "text": "describe"}
        url = content[1]["image_url"]["url"]
        assert url == f"data:image/png;base64,{base64.b64encode(b'img').decode()}"

    @pytest.mark.asyncio
    async def test_httpStatusError(self):
        g = CompatGenerator(
            model="m", api_key="k", client=_client(lambda r: httpx.Response(401, text="no"))
        )
        with pytest.raises(GenerationError):
            await g.complete("hi")


# -- Factory --


class TestFactory:
    def test_ollama(self):
        g = createGenerator(GenerationConfig(provider="ollama", model="llava"))
        assert isinstance(g, OllamaGenerator)
        assert g.name == "ollama/llava"

    def test_compat(self):
        g = createGenerator(GenerationConfig(provider="compat", model="m", api_key="k"))
        assert isinstance(g, CompatGenerator)
        assert g.name == "compat/m"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown generation provider"):
            createGenerator(GenerationConfig(provider="carrier-pigeon"))
