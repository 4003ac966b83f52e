"""Tests for embedding providers."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from memograph.config import EmbeddingConfig
from memograph.embeddings.base import EmbeddingProvider
from memograph.embeddings.compat import CompatProvider
from memograph.embeddings.ollama import OllamaProvider
from memograph.errors import EmbeddingError


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


# -- Protocol conformance --


class TestEmbeddingProtocol:
    def test_fakeEmbedderConforms(self, fake_embedder):
        assert isinstance(fake_embedder, EmbeddingProvider)

    def test_ollamaConforms(self):
        assert isinstance(OllamaProvider(), EmbeddingProvider)

    def test_compatConforms(self):
        assert isinstance(CompatProvider(model="m", api_key="k"), EmbeddingProvider)


# -- OllamaProvider --


class TestOllamaProvider:
    def test_properties(self):
        p = OllamaProvider(model="test-model", dimensions=512)
        assert p.name == "ollama/test-model"
        assert p.dimensions == 512

    @pytest.mark.asyncio
    async def test_embed(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            assert request.url.path == "/api/embed"
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2, 0.3]]})

        p = OllamaProvider(model="nomic-embed-text", client=_client(handler))
        assert await p.embedOne("hello") == [0.1, 0.2, 0.3]
        assert seen == [{"model": "nomic-embed-text", "input": ["hello"]}]

    @pytest.mark.asyncio
    async def test_httpErrorBecomesEmbeddingError(self):
        p = OllamaProvider(client=_client(lambda r: httpx.Response(500, text="oops")))
        with pytest.raises(EmbeddingError):
            await p.embed(["hello"])

    @pytest.mark.asyncio
    async def test_malformedBodyBecomesEmbeddingError(self):
        p = OllamaProvider(client=_client(lambda r: httpx.Response(200, json={"nope": 1})))
        with pytest.raises(EmbeddingError):
            await p.embed(["hello"])

    @pytest.mark.asyncio
    async def test_emptyEmbeddingsBecomeEmbeddingError(self):
        p = OllamaProvider(client=_client(lambda r: httpx.Response(200, json={"embeddings": []})))
        with pytest.raises(EmbeddingError, match="expected 1 vectors, got 0"):
            await p.embedOne("hello")

    @pytest.mark.asyncio
    async def test_nullEmbeddingsBecomeEmbeddingError(self):
        body = {"embeddings": None}
        p = OllamaProvider(client=_client(lambda r: httpx.Response(200, json=body)))
        with pytest.raises(EmbeddingError):
            await p.embed(["hello"])

    @pytest.mark.asyncio
    async def test_healthCheckPass(self):
        body = {"models": [{"name": "nomic-embed-text:latest"}]}
        p = OllamaProvider(client=_client(lambda r: httpx.Response(200, json=body)))
        assert await p.healthCheck() is True

    @pytest.mark.asyncio
    async def test_healthCheckFail(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        p = OllamaProvider(client=_client(handler))
        assert await p.healthCheck() is False


# -- CompatProvider --


class TestCompatProvider:
    def test_properties(self):
        p = CompatProvider(model="text-embedding-3-small", api_key="key", api_type="openai")
        assert p.name == "openai/text-embedding-3-small"

    def test_requiresApiKey(self):
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValueError, match="API key required"),
        ):
            CompatProvider(model="test-model", api_key=None)

    @pytest.mark.asyncio
    async def test_embedOrderPreserved(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/embeddings"
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"embedding": [0.3, 0.4], "index": 1},
                        {"embedding": [0.1, 0.2], "index": 0},
                    ]
                },
            )

        p = CompatProvider(model="m", api_key="key", client=_client(handler))
        assert await p.embed(["first", "second"]) == [[0.1, 0.2], [0.3, 0.4]]

    @pytest.mark.asyncio
    async def test_transportErrorBecomesEmbeddingError(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down")

        p = CompatProvider(model="m", api_key="key", client=_client(handler))
        with pytest.raises(EmbeddingError):
            await p.embedOne("x")

    @pytest.mark.asyncio
    async def test_itemWithoutEmbeddingBecomesEmbeddingError(self):
        body = {"data": [{"index": 0, "object": "embedding"}]}
        p = CompatProvider(
            model="m", api_key="key", client=_client(lambda r: httpx.Response(200, json=body))
        )
        with pytest.raises(EmbeddingError):
            await p.embedOne("x")

    @pytest.mark.asyncio
    async def test_missingVectorsBecomeEmbeddingError(self):
        body = {"data": [{"embedding": [0.1, 0.2], "index": 0}]}
        p = CompatProvider(
            model="m", api_key="key", client=_client(lambda r: httpx.Response(200, json=body))
        )
        with pytest.raises(EmbeddingError, match="expected 2 vectors, got 1"):
            await p.embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_emptyDataBecomesEmbeddingError(self):
        body = {"data": []}
        p = CompatProvider(
            model="m", api_key="key", client=_client(lambda r: httpx.Response(200, json=body))
        )
        with pytest.raises(EmbeddingError):
            await p.embedOne("x")


# -- Factory --


class TestFactory:
    @pytest.mark.asyncio
    async def test_createOllamaProvider(self):
        config = EmbeddingConfig(provider="ollama")
        with patch("memograph.embeddings.factory._tryOllama", new_callable=AsyncMock) as mock:
            mock.return_value = MagicMock(spec=EmbeddingProvider)
            from memograph.embeddings.factory import createProvider

            result = await createProvider(config)
            mock.assert_called_once_with(config)
            assert result is mock.return_value

    @pytest.mark.asyncio
    async def test_createCompatProvider(self):
        config = EmbeddingConfig(provider="compat", api_key="test-key")
        with patch("memograph.embeddings.factory._createCompat") as mock:
            mock.return_value = MagicMock(spec=EmbeddingProvider)
            from memograph.embeddings.factory import createProvider

            result = await createProvider(config)
            mock.assert_called_once_with(config)
            assert result is mock.return_value

    @pytest.mark.asyncio
    async def test_autoDetectFallsBackToCompat(self):
        config = EmbeddingConfig(provider="auto", api_key="test-key")
        with (
            patch("memograph.embeddings.factory._tryOllama", side_effect=ConnectionError),
            patch("memograph.embeddings.factory._createCompat") as mock_compat,
        ):
            mock_compat.return_value = MagicMock(spec=EmbeddingProvider)
            from memograph.embeddings.factory import createProvider

            result = await createProvider(config)
            assert result is mock_compat.return_value

    @pytest.mark.asyncio
    async def test_autoDetectNothingAvailable(self):
        config = EmbeddingConfig(provider="auto")
        with (
            patch("memograph.embeddings.factory._tryOllama", side_effect=ConnectionError),
            patch("memograph.embeddings.factory._createCompat", side_effect=ValueError),
        ):
            from memograph.embeddings.factory import createProvider

            with pytest.raises(RuntimeError, match="No embedding provider"):
                await createProvider(config)
