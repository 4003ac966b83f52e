"""Tests for database operations."""

from __future__ import annotations

import sqlite3

import pytest

from memograph.config import MemographConfig
from memograph.db import (
    connect,
    createRun,
    createStep,
    decodeEmbedding,
    deleteEntity,
    deleteFact,
    encodeEmbedding,
    entitiesWithEmbeddings,
    factsWithEmbeddings,
    finalizeRun,
    findEntity,
    getFact,
    getRun,
    graphStats,
    insertEntity,
    insertFact,
    insertRelation,
    linkFactToEntity,
    listFacts,
    listRelations,
    listSteps,
    searchFactsText,
    updateStep,
)
from memograph.errors import DuplicateRelationError


def test_migrateIsIdempotent(config: MemographConfig):
    first = connect(config)
    first.close()
    second = connect(config)
    version = second.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
    assert version[0] == "1"
    second.close()


def test_embeddingBlobs():
    blob = encodeEmbedding([0.5, -0.25, 1.0])
    assert decodeEmbedding(blob) == [0.5, -0.25, 1.0]
    assert encodeEmbedding([]) is None
    assert decodeEmbedding(None) == []


# -- Facts --


def test_insertAndGetFact(db: sqlite3.Connection):
    fid = insertFact(
        db,
        "User prefers dark mode",
        [0.5, 0.5, 0.5, 0.5],
        kind="preference",
        importance="high",
        source_ref="shot-1.png",
    )
    row = getFact(db, fid)
    assert row["content"] == "User prefers dark mode"
    assert row["kind"] == "preference"
    assert row["importance"] == "high"
    assert row["source_ref"] == "shot-1.png"
    assert decodeEmbedding(row["embedding"]) == [0.5, 0.5, 0.5, 0.5]


def test_factWithoutEmbedding(db: sqlite3.Connection):
    with_vec = insertFact(db, "has a vector", [1.0, 0.0, 0.0, 0.0])
    without = insertFact(db, "no vector", [])
    assert getFact(db, without)["embedding"] is None
    assert [r["id"] for r in factsWithEmbeddings(db)] == [with_vec]


def test_listFactsNewestFirst(db: sqlite3.Connection):
    ids = [insertFact(db, f"fact {i}", []) for i in range(3)]
    assert [r["id"] for r in listFacts(db)] == list(reversed(ids))
    assert [r["id"] for r in listFacts(db, limit=1, offset=1)] == [ids[1]]


def test_listFactsFiltered(db: sqlite3.Connection):
    pref = insertFact(db, "likes tea", [], kind="preference", importance="high")
    insertFact(db, "went hiking", [], kind="event", importance="high")
    insertFact(db, "prefers trains", [], kind="preference", importance="low")
    assert len(listFacts(db, kind="preference")) == 2
    assert len(listFacts(db, importance="high")) == 2
    assert [r["id"] for r in listFacts(db, kind="preference", importance="high")] == [pref]


def test_searchFactsText(db: sqlite3.Connection):
    rust = insertFact(db, "User is learning Rust", [])
    ctx = insertFact(db, "Weekly standup", [], context="rust team sync")
    insertFact(db, "Prefers dark mode", [])
    assert [r["id"] for r in searchFactsText(db, "RUST")] == [ctx, rust]
    assert searchFactsText(db, "nothing here") == []


def test_searchFactsTextEscapesWildcards(db: sqlite3.Connection):
    pct = insertFact(db, "Saves 20% of income", [])
    insertFact(db, "Saves 200 dollars", [])
    insertFact(db, "snake_case names", [])
    insertFact(db, "has one cat", [])
    assert [r["id"] for r in searchFactsText(db, "20%")] == [pct]
    assert [r["content"] for r in searchFactsText(db, "e_c")] == ["snake_case names"]


# -- Entities --


def test_findEntityCaseInsensitiveAndTyped(db: sqlite3.Connection):
    eid = insertEntity(db, "John Doe", "person")
    insertEntity(db, "John Doe", "topic")
    row = findEntity(db, "  john DOE ", "person")
    assert row["id"] == eid
    assert findEntity(db, "John Doe", "place") is None


def test_findEntityOldestWins(db: sqlite3.Connection):
    first = insertEntity(db, "Rust", "topic")
    insertEntity(db, "rust", "topic")
    assert findEntity(db, "RUST", "topic")["id"] == first


def test_entitiesWithEmbeddingsByType(db: sqlite3.Connection):
    person = insertEntity(db, "Alice", "person", embedding=[1.0, 0.0, 0.0, 0.0])
    insertEntity(db, "Paris", "place", embedding=[0.0, 1.0, 0.0, 0.0])
    insertEntity(db, "Bob", "person")
    assert [r["id"] for r in entitiesWithEmbeddings(db, "person")] == [person]
    assert len(entitiesWithEmbeddings(db)) == 2


# -- Relations --


def test_linkFactToEntityDuplicate(db: sqlite3.Connection):
    fid = insertFact(db, "User is learning Rust", [])
    eid = insertEntity(db, "Rust", "topic")
    rid = linkFactToEntity(db, fid, eid)
    row = listRelations(db, fact_id=fid)[0]
    assert row["id"] == rid
    assert row["kind"] == "fact_entity"
    assert row["relation_type"] == "mentions"
    assert row["source_entity_id"] is None

    with pytest.raises(DuplicateRelationError):
        linkFactToEntity(db, fid, eid)
    assert len(listRelations(db, kind="fact_entity")) == 1


def test_entityRelationDuplicate(db: sqlite3.Connection):
    a = insertEntity(db, "Alice", "person")
    b = insertEntity(db, "Acme", "organization")
    insertRelation(db, a, b, "works_at")
    with pytest.raises(DuplicateRelationError):
        insertRelation(db, a, b, "works_at")
    # Different type or direction is a different relation
    insertRelation(db, a, b, "founded")
    insertRelation(db, b, a, "works_at")
    assert len(listRelations(db, kind="entity_entity")) == 3


def test_selfLoopRejected(db: sqlite3.Connection):
    a = insertEntity(db, "Alice", "person")
    with pytest.raises(ValueError):
        insertRelation(db, a, a, "knows")
    assert listRelations(db) == []


def test_selfLoopRejectedBySchema(db: sqlite3.Connection):
    a = insertEntity(db, "Alice", "person")
    with pytest.raises(sqlite3.IntegrityError):
        db.execute(
            """INSERT INTO relations (kind, source_entity_id, target_entity_id, relation_type,
               created_at) VALUES ('entity_entity', ?, ?, 'knows', 0)""",
            (a, a),
        )


def test_deleteEntityCascades(db: sqlite3.Connection):
    fid = insertFact(db, "Alice works at Acme", [])
    a = insertEntity(db, "Alice", "person")
    b = insertEntity(db, "Acme", "organization")
    linkFactToEntity(db, fid, a)
    insertRelation(db, a, b, "works_at")

    assert deleteEntity(db, a)
    assert listRelations(db) == []
    assert getFact(db, fid) is not None
    assert not deleteEntity(db, a)


def test_deleteFactCascadesLinks(db: sqlite3.Connection):
    fid = insertFact(db, "Alice works at Acme", [])
    a = insertEntity(db, "Alice", "person")
    linkFactToEntity(db, fid, a)
    assert deleteFact(db, fid)
    assert listRelations(db, entity_id=a) == []


# -- Run history --


def test_runLifecycle(db: sqlite3.Connection):
    run_id = createRun(db, "shot-1.png")
    assert getRun(db, run_id)["status"] == "processing"

    step_id = createStep(db, run_id, "classify", details="starting")
    updateStep(db, step_id, "completed")
    step = listSteps(db, run_id)[0]
    assert step["status"] == "completed"
    assert step["details"] == "starting"
    assert step["completed_at"] is not None

    finalizeRun(db, run_id, "completed", action_kind="SAVE_MEMORY", facts_saved=2)
    row = getRun(db, run_id)
    assert row["status"] == "completed"
    assert row["facts_saved"] == 2
    assert row["completed_at"] >= row["started_at"]


def test_graphStats(db: sqlite3.Connection):
    fid = insertFact(db, "fact", [])
    a = insertEntity(db, "A", "person")
    b = insertEntity(db, "B", "person")
    linkFactToEntity(db, fid, a)
    insertRelation(db, a, b, "knows")
    finalizeRun(db, createRun(db, "x"), "error", error_message="boom")
    stats = graphStats(db)
    assert stats == {
        "facts": 1,
        "entities": 2,
        "fact_links": 1,
        "relations": 1,
        "runs": 1,
        "failed_runs": 1,
    }
