"""Graph repository: the storage operations the pipeline needs, and their SQLite implementation."""

from __future__ import annotations

import sqlite3
from typing import Protocol, runtime_checkable

from memograph import db as dbops
from memograph.models import (
    Entity,
    EntityType,
    ExtractedFact,
    Fact,
    FactKind,
    GraphEdge,
    GraphNode,
    Importance,
    KnowledgeGraph,
    PipelineRun,
    PipelineStep,
    Relation,
    RelationKind,
)


@runtime_checkable
class GraphStore(Protocol):
    """Repository interface consumed by the pipeline, resolver, and context builder.

    Reads immediately after a write must observe that write.
    """

    # Facts
    def insertFact(
        self,
        fact: ExtractedFact,
        embedding: list[float],
        source_ref: str | None = None,
        source_image_path: str | None = None,
    ) -> Fact: ...

    def getFact(self, fact_id: int) -> Fact | None: ...

    def listFacts(
        self,
        limit: int = 20,
        offset: int = 0,
        kind: FactKind | None = None,
        importance: Importance | None = None,
    ) -> list[Fact]: ...

    def searchFactsText(self, query: str, limit: int = 20) -> list[Fact]: ...

    def recentFacts(self, limit: int = 5) -> list[Fact]: ...

    def factsWithEmbeddings(self) -> list[Fact]: ...

    def deleteFact(self, fact_id: int) -> bool: ...

    # Entities
    def insertEntity(
        self,
        name: str,
        entity_type: EntityType,
        description: str | None = None,
        embedding: list[float] | None = None,
    ) -> Entity: ...

    def getEntity(self, entity_id: int) -> Entity | None: ...

    def findEntity(self, name: str, entity_type: EntityType) -> Entity | None: ...

    def entitiesWithEmbeddings(self, entity_type: EntityType | None = None) -> list[Entity]: ...

    def listEntities(
        self, entity_type: EntityType | None = None, limit: int = 100, offset: int = 0
    ) -> list[Entity]: ...

    def deleteEntity(self, entity_id: int) -> bool: ...

    # Relations
    def linkFactToEntity(self, fact_id: int, entity_id: int) -> int: ...

    def insertRelation(
        self,
        source_entity_id: int,
        target_entity_id: int,
        relation_type: str,
        description: str | None = None,
    ) -> int: ...

    def listRelations(
        self, kind: RelationKind | None = None, entity_id: int | None = None
    ) -> list[Relation]: ...

    # Run history
    def createRun(self, observation_ref: str) -> int: ...

    def finalizeRun(self, run_id: int, status: str, **fields: object) -> None: ...

    def createStep(self, run_id: int, name: str, details: str | None = None) -> int: ...

    def updateStep(
        self,
        step_id: int,
        status: str,
        details: str | None = None,
        error_message: str | None = None,
    ) -> None: ...

    def listRuns(self, limit: int = 20, offset: int = 0) -> list[PipelineRun]: ...

    def getRun(self, run_id: int) -> PipelineRun | None: ...

    def listSteps(self, run_id: int) -> list[PipelineStep]: ...

    # Aggregates
    def knowledgeGraph(self) -> KnowledgeGraph: ...

    def stats(self) -> dict: ...


# ── Row mapping ──────────────────────────────────────────────


def _fact(row: sqlite3.Row) -> Fact:
    return Fact(
        id=row["id"],
        content=row["content"],
        kind=FactKind.parse(row["kind"]),
        importance=Importance.parse(row["importance"]),
        context=row["context"],
        structured_data=row["structured_data"],
        embedding=dbops.decodeEmbedding(row["embedding"]),
        created_at=row["created_at"],
        source_ref=row["source_ref"],
        source_image_path=row["source_image_path"],
    )


def _entity(row: sqlite3.Row) -> Entity:
    return Entity(
        id=row["id"],
        name=row["name"],
        entity_type=EntityType.parse(row["entity_type"]),
        description=row["description"],
        embedding=dbops.decodeEmbedding(row["embedding"]),
        created_at=row["created_at"],
    )


def _relation(row: sqlite3.Row) -> Relation:
    return Relation(
        id=row["id"],
        kind=RelationKind(row["kind"]),
        source_entity_id=row["source_entity_id"],
        target_entity_id=row["target_entity_id"],
        relation_type=row["relation_type"],
        description=row["description"],
        fact_id=row["fact_id"],
        created_at=row["created_at"],
    )


# ── SQLite implementation ────────────────────────────────────


class SqliteStore:
    """GraphStore over a single sqlite3 connection."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db

    # Facts

    def insertFact(
        self,
        fact: ExtractedFact,
        embedding: list[float],
        source_ref: str | None = None,
        source_image_path: str | None = None,
    ) -> Fact:
        fact_id = dbops.insertFact(
            self.db,
            fact.content,
            embedding,
            kind=fact.kind.value,
            importance=fact.importance.value,
            context=fact.context,
            structured_data=fact.structured_data,
            source_ref=source_ref,
            source_image_path=source_image_path,
        )
        saved = self.getFact(fact_id)
        assert saved is not None
        return saved

    def getFact(self, fact_id: int) -> Fact | None:
        row = dbops.getFact(self.db, fact_id)
        return _fact(row) if row else None

    def listFacts(
        self,
        limit: int = 20,
        offset: int = 0,
        kind: FactKind | None = None,
        importance: Importance | None = None,
    ) -> list[Fact]:
        rows = dbops.listFacts(
            self.db,
            limit=limit,
            offset=offset,
            kind=kind.value if kind else None,
            importance=importance.value if importance else None,
        )
        return [_fact(r) for r in rows]

    def searchFactsText(self, query: str, limit: int = 20) -> list[Fact]:
        return [_fact(r) for r in dbops.searchFactsText(self.db, query, limit=limit)]

    def recentFacts(self, limit: int = 5) -> list[Fact]:
        return self.listFacts(limit=limit)

    def factsWithEmbeddings(self) -> list[Fact]:
        return [_fact(r) for r in dbops.factsWithEmbeddings(self.db)]

    def deleteFact(self, fact_id: int) -> bool:
        return dbops.deleteFact(self.db, fact_id)

    # Entities

    def insertEntity(
        self,
        name: str,
        entity_type: EntityType,
        description: str | None = None,
        embedding: list[float] | None = None,
    ) -> Entity:
        entity_id = dbops.insertEntity(
            self.db, name, entity_type.value, description=description, embedding=embedding
        )
        saved = self.getEntity(entity_id)
        assert saved is not None
        return saved

    def getEntity(self, entity_id: int) -> Entity | None:
        row = dbops.getEntity(self.db, entity_id)
        return _entity(row) if row else None

    def findEntity(self, name: str, entity_type: EntityType) -> Entity | None:
        row = dbops.findEntity(self.db, name, entity_type.value)
        return _entity(row) if row else None

    def entitiesWithEmbeddings(self, entity_type: EntityType | None = None) -> list[Entity]:
        type_value = entity_type.value if entity_type else None
        return [_entity(r) for r in dbops.entitiesWithEmbeddings(self.db, type_value)]

    def listEntities(
        self, entity_type: EntityType | None = None, limit: int = 100, offset: int = 0
    ) -> list[Entity]:
        type_value = entity_type.value if entity_type else None
        rows = dbops.listEntities(self.db, type_value, limit=limit, offset=offset)
        return [_entity(r) for r in rows]

    def deleteEntity(self, entity_id: int) -> bool:
        return dbops.deleteEntity(self.db, entity_id)

    # Relations

    def linkFactToEntity(self, fact_id: int, entity_id: int) -> int:
        return dbops.linkFactToEntity(self.db, fact_id, entity_id)

    def insertRelation(
        self,
        source_entity_id: int,
        target_entity_id: int,
        relation_type: str,
        description: str | None = None,
    ) -> int:
        return dbops.insertRelation(
            self.db, source_entity_id, target_entity_id, relation_type, description
        )

    def listRelations(
        self, kind: RelationKind | None = None, entity_id: int | None = None
    ) -> list[Relation]:
        rows = dbops.listRelations(
            self.db, kind=kind.value if kind else None, entity_id=entity_id
        )
        return [_relation(r) for r in rows]

    # Run history

    def createRun(self, observation_ref: str) -> int:
        return dbops.createRun(self.db, observation_ref)

    def finalizeRun(self, run_id: int, status: str, **fields: object) -> None:
        dbops.finalizeRun(self.db, run_id, status, **fields)  # type: ignore[arg-type]

    def createStep(self, run_id: int, name: str, details: str | None = None) -> int:
        return dbops.createStep(self.db, run_id, name, details=details)

    def updateStep(
        self,
        step_id: int,
        status: str,
        details: str | None = None,
        error_message: str | None = None,
    ) -> None:
        dbops.updateStep(self.db, step_id, status, details=details, error_message=error_message)

    def listRuns(self, limit: int = 20, offset: int = 0) -> list[PipelineRun]:
        return [PipelineRun(**dict(r)) for r in dbops.listRuns(self.db, limit, offset)]

    def getRun(self, run_id: int) -> PipelineRun | None:
        row = dbops.getRun(self.db, run_id)
        return PipelineRun(**dict(row)) if row else None

    def listSteps(self, run_id: int) -> list[PipelineStep]:
        return [PipelineStep(**dict(r)) for r in dbops.listSteps(self.db, run_id)]

    # Aggregates

    def knowledgeGraph(self) -> KnowledgeGraph:
        """Entities as nodes, entity-to-entity relations as edges."""
        nodes = [
            GraphNode(
                id=e.id, name=e.name, type=e.entity_type.value, description=e.description
            )
            for e in self.listEntities(limit=-1)
        ]
        edges = [
            GraphEdge(
                id=r.id,
                source=r.source_entity_id,
                target=r.target_entity_id,
                label=r.relation_type,
                description=r.description,
            )
            for r in self.listRelations(kind=RelationKind.ENTITY_ENTITY)
            if r.source_entity_id is not None
        ]
        return KnowledgeGraph(nodes=nodes, edges=edges)

    def stats(self) -> dict:
        return dbops.graphStats(self.db)
