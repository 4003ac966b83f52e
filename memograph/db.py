"""SQLite database setup and row-level operations for facts, entities, relations, and runs."""

from __future__ import annotations

import logging
import sqlite3
import struct
import time
from pathlib import Path

from sqlite_vec import serialize_float32

from memograph.config import MemographConfig
from memograph.errors import DuplicateRelationError

SCHEMA_VERSION = 1
MENTIONS = "mentions"
logger = logging.getLogger("memograph")


def _now() -> int:
    return int(time.time() * 1000)


def connect(config: MemographConfig, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open DB and run migrations."""
    db_path = Path(config.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    db.row_factory = sqlite3.Row
    db.execute("PRAGMA journal_mode=WAL")
    db.execute("PRAGMA foreign_keys=ON")
    db.execute("PRAGMA busy_timeout=5000")
    _migrate(db)
    return db


def _migrate(db: sqlite3.Connection) -> None:
    """Create tables if they don't exist."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS facts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            content TEXT NOT NULL,
            kind TEXT NOT NULL DEFAULT 'fact',
            importance TEXT NOT NULL DEFAULT 'medium',
            context TEXT,
            structured_data TEXT,
            embedding BLOB,
            source_ref TEXT,
            source_image_path TEXT,
            created_at INTEGER NOT NULL
        );

        -- Natural key (name, entity_type) is deliberately not unique
        CREATE TABLE IF NOT EXISTS entities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            description TEXT,
            embedding BLOB,
            created_at INTEGER NOT NULL
        );

        -- fact_entity rows: fact_id + target_entity_id, source_entity_id NULL
        -- entity_entity rows: source_entity_id + target_entity_id
        CREATE TABLE IF NOT EXISTS relations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            kind TEXT NOT NULL,
            source_entity_id INTEGER REFERENCES entities(id) ON DELETE CASCADE,
            target_entity_id INTEGER NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
            relation_type TEXT NOT NULL,
            description TEXT,
            fact_id INTEGER REFERENCES facts(id) ON DELETE CASCADE,
            created_at INTEGER NOT NULL,
            CHECK (source_entity_id IS NULL OR source_entity_id != target_entity_id)
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_relations_fact_entity
            ON relations(fact_id, target_entity_id) WHERE kind = 'fact_entity';
        CREATE UNIQUE INDEX IF NOT EXISTS idx_relations_entity_entity
            ON relations(source_entity_id, target_entity_id, relation_type)
            WHERE kind = 'entity_entity';

        CREATE TABLE IF NOT EXISTS pipeline_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            observation_ref TEXT NOT NULL,
            started_at INTEGER NOT NULL,
            completed_at INTEGER,
            status TEXT NOT NULL DEFAULT 'processing',
            action_kind TEXT,
            description TEXT,
            facts_saved INTEGER DEFAULT 0,
            entities_created INTEGER DEFAULT 0,
            entities_matched INTEGER DEFAULT 0,
            relations_created INTEGER DEFAULT 0,
            generated_response TEXT,
            error_message TEXT
        );

        CREATE TABLE IF NOT EXISTS pipeline_steps (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id INTEGER NOT NULL REFERENCES pipeline_runs(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            started_at INTEGER NOT NULL,
            completed_at INTEGER,
            details TEXT,
            error_message TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_facts_created ON facts(created_at);
        CREATE INDEX IF NOT EXISTS idx_entities_name ON entities(name, entity_type);
        CREATE INDEX IF NOT EXISTS idx_relations_target ON relations(target_entity_id);
        CREATE INDEX IF NOT EXISTS idx_relations_fact ON relations(fact_id);
        CREATE INDEX IF NOT EXISTS idx_steps_run ON pipeline_steps(run_id);

        CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT);
    """)
    db.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    db.commit()


# -- Embedding blobs --


def encodeEmbedding(embedding: list[float]) -> bytes | None:
    if not embedding:
        return None
    return serialize_float32(embedding)


def decodeEmbedding(blob: bytes | None) -> list[float]:
    if not blob:
        return []
    return list(struct.unpack(f"{len(blob) // 4}f", blob))


# -- Fact CRUD --


def insertFact(
    db: sqlite3.Connection,
    content: str,
    embedding: list[float],
    kind: str = "fact",
    importance: str = "medium",
    context: str | None = None,
    structured_data: str | None = None,
    source_ref: str | None = None,
    source_image_path: str | None = None,
) -> int:
    """Insert a fact + its embedding. Returns fact ID."""
    cursor = db.execute(
        """INSERT INTO facts (content, kind, importance, context, structured_data,
           embedding, source_ref, source_image_path, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            content,
            kind,
            importance,
            context,
            structured_data,
            encodeEmbedding(embedding),
            source_ref,
            source_image_path,
            _now(),
        ),
    )
    db.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def getFact(db: sqlite3.Connection, fact_id: int) -> sqlite3.Row | None:
    return db.execute("SELECT * FROM facts WHERE id = ?", (fact_id,)).fetchone()


def listFacts(
    db: sqlite3.Connection,
    limit: int = 20,
    offset: int = 0,
    kind: str | None = None,
    importance: str | None = None,
) -> list[sqlite3.Row]:
    """Newest first, optionally filtered by kind and importance."""
    conditions: list[str] = []
    params: list[str | int] = []
    if kind:
        conditions.append("kind = ?")
        params.append(kind)
    if importance:
        conditions.append("importance = ?")
        params.append(importance)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    params.extend([limit, offset])
    return db.execute(
        f"SELECT * FROM facts {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
        params,
    ).fetchall()


def searchFactsText(db: sqlite3.Connection, query: str, limit: int = 20) -> list[sqlite3.Row]:
    """Case-insensitive substring match on content or context, newest first."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return db.execute(
        """SELECT * FROM facts
           WHERE content LIKE ? ESCAPE '\\'
              OR context LIKE ? ESCAPE '\\'
           ORDER BY created_at DESC, id DESC LIMIT ?""",
        (pattern, pattern, limit),
    ).fetchall()


def factsWithEmbeddings(db: sqlite3.Connection) -> list[sqlite3.Row]:
    return db.execute(
        "SELECT * FROM facts WHERE embedding IS NOT NULL AND length(embedding) > 0 ORDER BY id"
    ).fetchall()


def deleteFact(db: sqlite3.Connection, fact_id: int) -> bool:
    """Delete a fact (cascades to its entity links). Returns True if found."""
    cursor = db.execute("DELETE FROM facts WHERE id = ?", (fact_id,))
    db.commit()
    return cursor.rowcount > 0


# -- Entity CRUD --


def insertEntity(
    db: sqlite3.Connection,
    name: str,
    entity_type: str,
    description: str | None = None,
    embedding: list[float] | None = None,
) -> int:
    cursor = db.execute(
        """INSERT INTO entities (name, entity_type, description, embedding, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (name, entity_type, description, encodeEmbedding(embedding or []), _now()),
    )
    db.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def getEntity(db: sqlite3.Connection, entity_id: int) -> sqlite3.Row | None:
    return db.execute("SELECT * FROM entities WHERE id = ?", (entity_id,)).fetchone()


def findEntity(db: sqlite3.Connection, name: str, entity_type: str) -> sqlite3.Row | None:
    """Case-insensitive lookup by (name, type). Oldest match wins."""
    return db.execute(
        """SELECT * FROM entities
           WHERE lower(trim(name)) = lower(trim(?)) AND entity_type = ?
           ORDER BY id LIMIT 1""",
        (name, entity_type),
    ).fetchone()


def entitiesWithEmbeddings(
    db: sqlite3.Connection, entity_type: str | None = None
) -> list[sqlite3.Row]:
    sql = "SELECT * FROM entities WHERE embedding IS NOT NULL AND length(embedding) > 0"
    params: list[str] = []
    if entity_type is not None:
        sql += " AND entity_type = ?"
        params.append(entity_type)
    return db.execute(sql + " ORDER BY id", params).fetchall()


def listEntities(
    db: sqlite3.Connection,
    entity_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[sqlite3.Row]:
    conditions: list[str] = []
    params: list[str | int] = []
    if entity_type:
        conditions.append("entity_type = ?")
        params.append(entity_type)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    params.extend([limit, offset])
    return db.execute(
        f"SELECT * FROM entities {where} ORDER BY name COLLATE NOCASE LIMIT ? OFFSET ?",
        params,
    ).fetchall()


def deleteEntity(db: sqlite3.Connection, entity_id: int) -> bool:
    """Delete entity (cascades to its relations). Returns True if found."""
    cursor = db.execute("DELETE FROM entities WHERE id = ?", (entity_id,))
    db.commit()
    return cursor.rowcount > 0


# -- Relations --


def _insertRelation(db: sqlite3.Connection, sql: str, params: tuple) -> int:
    try:
        cursor = db.execute(sql, params)
    except sqlite3.IntegrityError as e:
        db.rollback()
        if "UNIQUE" in str(e):
            raise DuplicateRelationError(str(e)) from e
        raise
    db.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def linkFactToEntity(db: sqlite3.Connection, fact_id: int, entity_id: int) -> int:
    """Create a fact → entity `mentions` link. Raises DuplicateRelationError if present."""
    return _insertRelation(
        db,
        """INSERT INTO relations (kind, source_entity_id, target_entity_id, relation_type,
           fact_id, created_at) VALUES ('fact_entity', NULL, ?, ?, ?, ?)""",
        (entity_id, MENTIONS, fact_id, _now()),
    )


def insertRelation(
    db: sqlite3.Connection,
    source_entity_id: int,
    target_entity_id: int,
    relation_type: str,
    description: str | None = None,
) -> int:
    """Create an entity → entity relation. Self-loops raise ValueError."""
    if source_entity_id == target_entity_id:
        raise ValueError(f"self-loop relation on entity {source_entity_id}")
    return _insertRelation(
        db,
        """INSERT INTO relations (kind, source_entity_id, target_entity_id, relation_type,
           description, created_at) VALUES ('entity_entity', ?, ?, ?, ?, ?)""",
        (source_entity_id, target_entity_id, relation_type, description, _now()),
    )


def listRelations(
    db: sqlite3.Connection,
    kind: str | None = None,
    entity_id: int | None = None,
    fact_id: int | None = None,
) -> list[sqlite3.Row]:
    conditions: list[str] = []
    params: list[str | int] = []
    if kind:
        conditions.append("kind = ?")
        params.append(kind)
    if entity_id is not None:
        conditions.append("(source_entity_id = ? OR target_entity_id = ?)")
        params.extend([entity_id, entity_id])
    if fact_id is not None:
        conditions.append("fact_id = ?")
        params.append(fact_id)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return db.execute(f"SELECT * FROM relations {where} ORDER BY id", params).fetchall()


# -- Run history --


def createRun(db: sqlite3.Connection, observation_ref: str) -> int:
    cursor = db.execute(
        "INSERT INTO pipeline_runs (observation_ref, started_at, status) VALUES (?, ?, ?)",
        (observation_ref, _now(), "processing"),
    )
    db.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def finalizeRun(
    db: sqlite3.Connection,
    run_id: int,
    status: str,
    action_kind: str | None = None,
    description: str | None = None,
    facts_saved: int = 0,
    entities_created: int = 0,
    entities_matched: int = 0,
    relations_created: int = 0,
    generated_response: str | None = None,
    error_message: str | None = None,
) -> None:
    """Write the terminal fields of a run."""
    db.execute(
        """UPDATE pipeline_runs SET completed_at = ?, status = ?, action_kind = ?,
           description = ?, facts_saved = ?, entities_created = ?, entities_matched = ?,
           relations_created = ?, generated_response = ?, error_message = ?
           WHERE id = ?""",
        (
            _now(),
            status,
            action_kind,
            description,
            facts_saved,
            entities_created,
            entities_matched,
            relations_created,
            generated_response,
            error_message,
            run_id,
        ),
    )
    db.commit()


def createStep(
    db: sqlite3.Connection,
    run_id: int,
    name: str,
    status: str = "running",
    details: str | None = None,
) -> int:
    cursor = db.execute(
        """INSERT INTO pipeline_steps (run_id, name, status, started_at, details)
           VALUES (?, ?, ?, ?, ?)""",
        (run_id, name, status, _now(), details),
    )
    db.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def updateStep(
    db: sqlite3.Connection,
    step_id: int,
    status: str,
    details: str | None = None,
    error_message: str | None = None,
) -> None:
    """Close a step. Existing details are kept when none are given."""
    db.execute(
        """UPDATE pipeline_steps SET status = ?, completed_at = ?,
           details = COALESCE(?, details), error_message = ?
           WHERE id = ?""",
        (status, _now(), details, error_message, step_id),
    )
    db.commit()


def listRuns(db: sqlite3.Connection, limit: int = 20, offset: int = 0) -> list[sqlite3.Row]:
    return db.execute(
        "SELECT * FROM pipeline_runs ORDER BY started_at DESC, id DESC LIMIT ? OFFSET ?",
        (limit, offset),
    ).fetchall()


def getRun(db: sqlite3.Connection, run_id: int) -> sqlite3.Row | None:
    return db.execute("SELECT * FROM pipeline_runs WHERE id = ?", (run_id,)).fetchone()


def listSteps(db: sqlite3.Connection, run_id: int) -> list[sqlite3.Row]:
    return db.execute(
        "SELECT * FROM pipeline_steps WHERE run_id = ? ORDER BY id", (run_id,)
    ).fetchall()


# -- Stats --


def _count(db: sqlite3.Connection, sql: str) -> int:
    return db.execute(sql).fetchone()[0]


def graphStats(db: sqlite3.Connection) -> dict:
    """Return DB statistics."""
    return {
        "facts": _count(db, "SELECT COUNT(*) FROM facts"),
        "entities": _count(db, "SELECT COUNT(*) FROM entities"),
        "fact_links": _count(db, "SELECT COUNT(*) FROM relations WHERE kind = 'fact_entity'"),
        "relations": _count(db, "SELECT COUNT(*) FROM relations WHERE kind = 'entity_entity'"),
        "runs": _count(db, "SELECT COUNT(*) FROM pipeline_runs"),
        "failed_runs": _count(db, "SELECT COUNT(*) FROM pipeline_runs WHERE status = 'error'"),
    }
