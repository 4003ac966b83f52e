"""Application state container shared by the HTTP API and CLI."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from memograph.config import MemographConfig, loadConfig
from memograph.db import connect
from memograph.embeddings.base import EmbeddingProvider
from memograph.embeddings.factory import createProvider
from memograph.llm.base import GenerationProvider
from memograph.llm.factory import createGenerator
from memograph.store import SqliteStore

logger = logging.getLogger("memograph")

DEFAULT_PORT = 7717

# ── Singleton ────────────────────────────────────────────────

_state: AppState | None = None


@dataclass(frozen=True)
class AppState:
    db: sqlite3.Connection
    store: SqliteStore
    embedder: EmbeddingProvider
    generator: GenerationProvider
    config: MemographConfig
    port: int = field(default=DEFAULT_PORT)


def getState() -> AppState:
    """Return current state or raise if not initialised."""
    assert _state is not None, "AppState not initialized, call initState() first"
    return _state


def isInitialized() -> bool:
    return _state is not None


async def initState(
    config: MemographConfig | None = None,
    port: int | None = None,
) -> AppState:
    """Create + store singleton. HTTP uses threads so check_same_thread=False."""
    global _state
    _state = await createAppState(config=config, port=port)
    return _state


def closeState() -> None:
    """Close DB and clear global."""
    global _state
    if _state and _state.db:
        _state.db.close()
    _state = None
    logger.info("Memograph shut down.")


def setState(s: AppState | None) -> None:
    """Inject state directly (for tests)."""
    global _state
    _state = s


async def createAppState(
    config: MemographConfig | None = None,
    port: int | None = None,
    check_same_thread: bool = False,
) -> AppState:
    """Create AppState: loads config, opens DB, initialises embedder and generator."""
    cfg = config or loadConfig()
    embedder = await createProvider(cfg.embedding)
    generator = createGenerator(cfg.generation)
    db = connect(cfg, check_same_thread=check_same_thread)
    p = port or cfg.port
    logger.info("Memograph starting, db: %s, port: %d", cfg.db_path, p)
    return AppState(
        db=db,
        store=SqliteStore(db),
        embedder=embedder,
        generator=generator,
        config=cfg,
        port=p,
    )
