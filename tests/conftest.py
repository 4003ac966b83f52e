"""Shared test fixtures."""

from __future__ import annotations

import hashlib
import sqlite3
from pathlib import Path

import pytest

from memograph.config import EmbeddingConfig, MemographConfig
from memograph.db import connect
from memograph.errors import EmbeddingError
from memograph.store import SqliteStore


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    return str(tmp_path / "test_memograph.db")


@pytest.fixture
def config(tmp_db_path: str) -> MemographConfig:
    return MemographConfig(
        db_path=tmp_db_path,
        embedding=EmbeddingConfig(dimensions=4),  # tiny dims for tests
    )


@pytest.fixture
def db(config: MemographConfig) -> sqlite3.Connection:
    conn = connect(config)
    yield conn
    conn.close()


@pytest.fixture
def store(db: sqlite3.Connection) -> SqliteStore:
    return SqliteStore(db)


class FakeEmbedder:
    """Deterministic fake embedder for tests.

    Vectors come from a sha256 of the text unless pinned via `vectors`, or
    every text maps to `constant`. `fail=True` raises EmbeddingError.
    """

    def __init__(
        self,
        dimensions: int = 4,
        vectors: dict[str, list[float]] | None = None,
        constant: list[float] | None = None,
        fail: bool = False,
    ):
        self._dimensions = dimensions
        self.vectors = vectors or {}
        self.constant = constant
        self.fail = fail
        self.calls: list[str] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def name(self) -> str:
        return "fake/test"

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embedOne(t) for t in texts]

    async def embedOne(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("fake embedder down")
        if text in self.vectors:
            return list(self.vectors[text])
        if self.constant is not None:
            return list(self.constant)
        return self._fakeVec(text)

    def _fakeVec(self, text: str) -> list[float]:
        digest = hashlib.sha256(text.encode()).digest()
        vec = [digest[i] / 255.0 + 0.01 for i in range(self._dimensions)]
        mag = sum(v * v for v in vec) ** 0.5
        return [v / mag for v in vec]


class FakeGenerator:
    """Scripted generation provider keyed by system prompt.

    A scripted value may be a string, an exception (raised), or a list of
    either (consumed in order, last one repeats). Unscripted prompts return "".
    """

    def __init__(self, script: dict[str, object] | None = None):
        self.script: dict[str, object] = dict(script or {})
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "fake/gen"

    def systems(self) -> list[str]:
        return [c["system_prompt"] for c in self.calls]

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 512,
        on_token=None,
        images: list[str] | None = None,
    ) -> str:
        self.calls.append(
            {
                "prompt": prompt,
                "system_prompt": system_prompt,
                "max_tokens": max_tokens,
                "images": images,
            }
        )
        reply = self.script.get(system_prompt, "")
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if isinstance(reply, BaseException):
            raise reply
        text = str(reply)
        if on_token is not None:
            for i, word in enumerate(text.split(" ")):
                on_token(word if i == 0 else " " + word)
        return text


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder(dimensions=4)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()
