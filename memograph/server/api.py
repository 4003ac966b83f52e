"""FastAPI HTTP API: routes calling the shared service layer."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from memograph.models import FactKind, Importance
from memograph.server.api_models import IngestRequest
from memograph.service import (
    svcDeleteFact,
    svcGraph,
    svcHistory,
    svcIngest,
    svcListEntities,
    svcListFacts,
    svcRunDetail,
    svcSearchFacts,
    svcStats,
)
from memograph.state import getState
from memograph.version import __version__

router = APIRouter()


# ── Health ───────────────────────────────────────────────────


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


# ── Ingest ───────────────────────────────────────────────────


@router.post("/ingest")
async def api_ingest(req: IngestRequest):
    """Run the pipeline. A failed run is returned as data (ok=false), not an HTTP error."""
    try:
        observation = req.toObservation()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail="observation needs text or image_path") from e
    outcome = await svcIngest(getState(), observation)
    return outcome.model_dump(mode="json")


# ── Facts ────────────────────────────────────────────────────


@router.get("/facts")
async def api_list_facts(
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    kind: FactKind | None = Query(None),
    importance: Importance | None = Query(None),
):
    return await svcListFacts(
        getState(),
        limit=limit,
        offset=offset,
        kind=kind.value if kind else None,
        importance=importance.value if importance else None,
    )


@router.get("/facts/search")
async def api_search_facts(
    q: str = Query(..., min_length=1),
    top_k: int = Query(10, ge=1, le=100),
    min_similarity: float | None = Query(None, ge=-1.0, le=1.0),
):
    return await svcSearchFacts(getState(), q, top_k=top_k, min_similarity=min_similarity)


@router.delete("/facts/{fact_id}")
async def api_delete_fact(fact_id: int):
    return await svcDeleteFact(getState(), fact_id)


# ── Knowledge Graph ──────────────────────────────────────────


@router.get("/entities")
async def api_list_entities(
    type: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    return await svcListEntities(getState(), entity_type=type, limit=limit, offset=offset)


@router.get("/graph")
async def api_graph():
    return await svcGraph(getState())


# ── Run History ──────────────────────────────────────────────


@router.get("/history")
async def api_history(
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    return await svcHistory(getState(), limit=limit, offset=offset)


@router.get("/history/{run_id}")
async def api_run_detail(run_id: int):
    detail = await svcRunDetail(getState(), run_id)
    if "error" in detail:
        raise HTTPException(status_code=404, detail=detail["error"])
    return detail


# ── Stats ────────────────────────────────────────────────────


@router.get("/stats")
async def api_stats():
    return await svcStats(getState())
