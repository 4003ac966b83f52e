"""Service layer: business operations shared by the HTTP API and CLI."""

from __future__ import annotations

import logging
import os

from memograph.errors import EmbeddingError
from memograph.llm.base import TokenCallback
from memograph.models import (
    EntityType,
    Fact,
    FactKind,
    Importance,
    Observation,
    PipelineOutcome,
)
from memograph.pipeline import Pipeline
from memograph.similarity import rankBySimilarity
from memograph.state import AppState

logger = logging.getLogger(__name__)

# ── Ingest ───────────────────────────────────────────────────


async def svcIngest(
    state: AppState,
    observation: Observation,
    on_token: TokenCallback | None = None,
) -> PipelineOutcome:
    """Run one observation through a fresh pipeline."""
    pipeline = Pipeline(state.store, state.embedder, state.generator, state.config)
    return await pipeline.process(observation, on_token=on_token)


# ── Facts ────────────────────────────────────────────────────


def _factDict(f: Fact, score: float | None = None) -> dict:
    d = {
        "id": f.id,
        "content": f.content,
        "kind": f.kind.value,
        "importance": f.importance.value,
        "context": f.context,
        "source_ref": f.source_ref,
        "created_at": f.created_at,
        "embedded": bool(f.embedding),
    }
    if score is not None:
        d["score"] = round(score, 4)
    return d


async def svcListFacts(
    state: AppState,
    limit: int = 20,
    offset: int = 0,
    kind: str | None = None,
    importance: str | None = None,
) -> dict:
    """Browse facts, newest first. Raises ValueError for an unknown kind or importance."""
    facts = state.store.listFacts(
        limit=limit,
        offset=offset,
        kind=FactKind(kind) if kind else None,
        importance=Importance(importance) if importance else None,
    )
    return {
        "facts": [_factDict(f) for f in facts],
        "count": len(facts),
        "offset": offset,
    }


async def svcSearchFacts(
    state: AppState,
    query: str,
    top_k: int = 10,
    min_similarity: float | None = None,
) -> dict:
    """Semantic search over saved facts.

    Falls back to a substring match on content and context when the query
    can't be embedded.
    """
    if min_similarity is None:
        min_similarity = state.config.context.min_similarity

    query_embedding: list[float] = []
    try:
        query_embedding = await state.embedder.embedOne(query)
    except EmbeddingError as e:
        logger.warning("Search embedding failed, falling back to text match: %s", e)

    if query_embedding:
        ranked = rankBySimilarity(
            query_embedding,
            state.store.factsWithEmbeddings(),
            top_k=top_k,
            min_similarity=min_similarity,
        )
        results = [_factDict(f, score) for f, score in ranked]
        strategy = "similarity"
    else:
        results = [_factDict(f) for f in state.store.searchFactsText(query, limit=top_k)]
        strategy = "text"

    return {"query": query, "strategy": strategy, "facts": results, "count": len(results)}


async def svcDeleteFact(state: AppState, fact_id: int) -> dict:
    deleted = state.store.deleteFact(fact_id)
    return {"deleted": deleted, "fact_id": fact_id}


# ── Knowledge Graph ──────────────────────────────────────────


async def svcListEntities(
    state: AppState,
    entity_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    type_filter = EntityType.parse(entity_type) if entity_type else None
    entities = state.store.listEntities(type_filter, limit=limit, offset=offset)
    return {
        "entities": [
            {
                "id": e.id,
                "name": e.name,
                "type": e.entity_type.value,
                "description": e.description,
                "created_at": e.created_at,
            }
            for e in entities
        ],
        "count": len(entities),
        "offset": offset,
    }


async def svcGraph(state: AppState) -> dict:
    """Full entity graph as nodes + edges."""
    return state.store.knowledgeGraph().model_dump()


# ── Run History ──────────────────────────────────────────────


async def svcHistory(state: AppState, limit: int = 20, offset: int = 0) -> dict:
    runs = state.store.listRuns(limit=limit, offset=offset)
    return {
        "runs": [r.model_dump(mode="json") for r in runs],
        "count": len(runs),
        "offset": offset,
    }


async def svcRunDetail(state: AppState, run_id: int) -> dict:
    """One run with its steps."""
    run = state.store.getRun(run_id)
    if run is None:
        return {"error": "Run not found", "run_id": run_id}
    return {
        "run": run.model_dump(mode="json"),
        "steps": [s.model_dump(mode="json") for s in state.store.listSteps(run_id)],
    }


# ── Stats ────────────────────────────────────────────────────


async def svcStats(state: AppState) -> dict:
    """Get database statistics."""
    stats = state.store.stats()
    db_path = os.path.expanduser(state.config.db_path)
    db_size = os.path.getsize(db_path) if os.path.exists(db_path) else 0

    return {
        **stats,
        "db_size_bytes": db_size,
        "db_size_mb": round(db_size / (1024 * 1024), 2),
        "embedding_provider": state.embedder.name,
        "embedding_dimensions": state.embedder.dimensions,
        "generation_provider": state.generator.name,
    }
