"""Pydantic models for observations, facts, entities, relations, and pipeline runs."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".gif"}


# ── Enums ────────────────────────────────────────────────────


class FactKind(str, Enum):
    FACT = "fact"
    PREFERENCE = "preference"
    INSIGHT = "insight"
    EVENT = "event"
    DECISION = "decision"

    @classmethod
    def parse(cls, value: str | None) -> FactKind:
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FACT


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str | None) -> Importance:
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.MEDIUM


class EntityType(str, Enum):
    PERSON = "person"
    PLACE = "place"
    PREFERENCE = "preference"
    EVENT = "event"
    TOPIC = "topic"
    PROJECT = "project"
    ORGANIZATION = "organization"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> EntityType:
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class RelationKind(str, Enum):
    FACT_ENTITY = "fact_entity"
    ENTITY_ENTITY = "entity_entity"


class ActionKind(str, Enum):
    SAVE_MEMORY = "SAVE_MEMORY"
    TAKE_ACTION = "TAKE_ACTION"
    BOTH = "BOTH"


class RunStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class PipelineStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    ANALYZING = "analyzing"
    EXTRACTING_MEMORIES = "extracting_memories"
    GENERATING_EMBEDDINGS = "generating_embeddings"
    SAVING_DATA = "saving_data"
    EXTRACTING_ENTITIES = "extracting_entities"
    RESOLVING_ENTITIES = "resolving_entities"
    CREATING_RELATIONS = "creating_relations"
    GENERATING_RESPONSE = "generating_response"
    COMPLETE = "complete"
    ERROR = "error"


# ── Input ────────────────────────────────────────────────────


class Observation(BaseModel):
    """One unit of input: screenshot-derived text and/or the screenshot itself."""

    ref: str
    text: str | None = None
    image_path: str | None = None

    @model_validator(mode="after")
    def _requireContent(self) -> Observation:
        if not (self.text and self.text.strip()) and not self.image_path:
            raise ValueError("observation needs text or an image_path")
        return self

    @classmethod
    def fromPath(cls, path: str | Path) -> Observation:
        """Text files become `text`; image files are passed through as `image_path`."""
        p = Path(path).expanduser()
        if p.suffix.lower() in IMAGE_SUFFIXES:
            return cls(ref=str(p), image_path=str(p))
        return cls(ref=str(p), text=p.read_text())


# ── Extraction output (transient) ────────────────────────────


class Classification(BaseModel):
    action_kind: ActionKind
    context_text: str


class ExtractedFact(BaseModel):
    content: str
    kind: FactKind = FactKind.FACT
    importance: Importance = Importance.MEDIUM
    context: str | None = None
    structured_data: str | None = None  # opaque JSON blob


class ExtractedEntity(BaseModel):
    name: str
    entity_type: str = "other"
    description: str | None = None
    mention_indices: list[int] = Field(default_factory=list)


class ExtractedRelation(BaseModel):
    source_name: str
    target_name: str
    relation_type: str = "related_to"
    description: str | None = None


class BatchExtraction(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    relations: list[ExtractedRelation] = Field(default_factory=list)


class MatchVerdict(BaseModel):
    is_match: bool = False
    target_id: int | None = None
    reasoning: str = ""


# ── Persisted graph ──────────────────────────────────────────


class Fact(BaseModel):
    id: int
    content: str
    kind: FactKind = FactKind.FACT
    importance: Importance = Importance.MEDIUM
    context: str | None = None
    structured_data: str | None = None
    embedding: list[float] = Field(default_factory=list)
    created_at: int
    source_ref: str | None = None
    source_image_path: str | None = None


class Entity(BaseModel):
    id: int
    name: str
    entity_type: EntityType
    description: str | None = None
    embedding: list[float] = Field(default_factory=list)
    created_at: int


class Relation(BaseModel):
    id: int
    kind: RelationKind
    source_entity_id: int | None = None
    target_entity_id: int
    relation_type: str
    description: str | None = None
    fact_id: int | None = None
    created_at: int


class GraphNode(BaseModel):
    id: int
    name: str
    type: str
    description: str | None = None


class GraphEdge(BaseModel):
    id: int
    source: int
    target: int
    label: str
    description: str | None = None


class KnowledgeGraph(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


# ── Run history ──────────────────────────────────────────────


class PipelineRun(BaseModel):
    id: int
    observation_ref: str
    started_at: int
    completed_at: int | None = None
    status: RunStatus = RunStatus.PROCESSING
    action_kind: str | None = None
    description: str | None = None
    facts_saved: int = 0
    entities_created: int = 0
    entities_matched: int = 0
    relations_created: int = 0
    generated_response: str | None = None
    error_message: str | None = None


class PipelineStep(BaseModel):
    id: int
    run_id: int
    name: str
    status: StepStatus = StepStatus.PENDING
    started_at: int
    completed_at: int | None = None
    details: str | None = None
    error_message: str | None = None


# ── Pipeline results ─────────────────────────────────────────


class PipelineResult(BaseModel):
    run_id: int | None = None
    action_kind: ActionKind
    facts_saved: int = 0
    entities_created: int = 0
    entities_matched: int = 0
    relations_created: int = 0
    generated_response: str | None = None
    description: str = ""


class PipelineOutcome(BaseModel):
    ok: bool
    result: PipelineResult | None = None
    error: str | None = None


class PipelineState(BaseModel):
    status: PipelineStatus = PipelineStatus.IDLE
    current_step: str = ""
    progress: float = 0.0
    error: str | None = None
    result: PipelineResult | None = None


class ResponseContext(BaseModel):
    query: str
    facts: list[Fact] = Field(default_factory=list)
    scores: list[float] = Field(default_factory=list)
    strategy: str = "none"  # "similarity", "recency", or "none"
    text: str = ""
    tokens: int = 0
