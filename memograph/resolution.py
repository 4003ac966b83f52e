"""Entity resolution: map an extracted mention to an existing or new Entity.

Three tiers, cheapest first:
1. run cache, revalidated against storage,
2. exact case-insensitive (name, type) lookup,
3. vector candidates of the same type, confirmed by model arbitration.

Anything ambiguous creates a new entity. A duplicate entity is acceptable;
a wrongful merge is not.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from memograph.config import ResolutionConfig
from memograph.embeddings.base import EmbeddingProvider
from memograph.errors import EmbeddingError, GenerationError
from memograph.extract.extractor import Extractor
from memograph.models import Entity, EntityType
from memograph.similarity import rankBySimilarity
from memograph.store import GraphStore

logger = logging.getLogger(__name__)


class ResolutionOutcome(str, Enum):
    CACHED = "cached"
    EXACT = "exact"
    ARBITRATED = "arbitrated"
    CREATED = "created"


class Resolution(BaseModel):
    entity: Entity
    outcome: ResolutionOutcome

    @property
    def created(self) -> bool:
        return self.outcome == ResolutionOutcome.CREATED


def normalizeName(name: str) -> str:
    return name.strip().lower()


def descriptorText(name: str, entity_type: EntityType, description: str | None = None) -> str:
    """Text embedded for both candidate search and new-entity embeddings."""
    text = f"{name} ({entity_type.value})"
    if description:
        text += f": {description}"
    return text


class ResolutionCache:
    """Run-scoped (normalized name, type) → entity id map. Never shared across runs."""

    def __init__(self) -> None:
        self._ids: dict[tuple[str, EntityType], int] = {}

    def get(self, name: str, entity_type: EntityType) -> int | None:
        return self._ids.get((normalizeName(name), entity_type))

    def put(self, name: str, entity_type: EntityType, entity_id: int) -> None:
        self._ids[(normalizeName(name), entity_type)] = entity_id

    def discard(self, name: str, entity_type: EntityType) -> None:
        self._ids.pop((normalizeName(name), entity_type), None)

    def clear(self) -> None:
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._ids)


class EntityResolver:
    def __init__(
        self,
        store: GraphStore,
        embedder: EmbeddingProvider,
        extractor: Extractor,
        cache: ResolutionCache | None = None,
        config: ResolutionConfig | None = None,
    ):
        self._store = store
        self._embedder = embedder
        self._extractor = extractor
        self._cache = cache if cache is not None else ResolutionCache()
        self._config = config or ResolutionConfig()

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    def clearCache(self) -> None:
        self._cache.clear()

    async def resolve(
        self,
        name: str,
        entity_type: EntityType,
        description: str | None = None,
        context: str | None = None,
    ) -> Resolution:
        """Resolve one mention. Storage errors propagate; model errors degrade to "create"."""
        cached_id = self._cache.get(name, entity_type)
        if cached_id is not None:
            entity = self._store.getEntity(cached_id)
            if entity is not None:
                return Resolution(entity=entity, outcome=ResolutionOutcome.CACHED)
            # Deleted since it was cached
            self._cache.discard(name, entity_type)

        existing = self._store.findEntity(name, entity_type)
        if existing is not None:
            self._cache.put(name, entity_type, existing.id)
            return Resolution(entity=existing, outcome=ResolutionOutcome.EXACT)

        descriptor = descriptorText(name, entity_type, description)
        embedding = await self._embedDescriptor(descriptor)
        candidates = self._candidates(embedding, entity_type)

        if candidates:
            matched = await self._arbitrate(name, entity_type, description, context, candidates)
            if matched is not None:
                self._cache.put(name, entity_type, matched.id)
                return Resolution(entity=matched, outcome=ResolutionOutcome.ARBITRATED)

        created = self._store.insertEntity(
            name.strip(), entity_type, description=description, embedding=embedding
        )
        self._cache.put(name, entity_type, created.id)
        logger.debug("Created entity %d: %s (%s)", created.id, name, entity_type.value)
        return Resolution(entity=created, outcome=ResolutionOutcome.CREATED)

    async def _embedDescriptor(self, descriptor: str) -> list[float]:
        try:
            return await self._embedder.embedOne(descriptor)
        except EmbeddingError as e:
            logger.warning("Descriptor embedding failed, skipping candidate search: %s", e)
            return []

    def _candidates(
        self, embedding: list[float], entity_type: EntityType
    ) -> list[tuple[Entity, float]]:
        if not embedding:
            return []
        # Only same-type entities are eligible; type is part of identity
        pool = self._store.entitiesWithEmbeddings(entity_type)
        return rankBySimilarity(
            embedding,
            pool,
            top_k=self._config.max_candidates,
            min_similarity=self._config.similarity_threshold,
        )

    async def _arbitrate(
        self,
        name: str,
        entity_type: EntityType,
        description: str | None,
        context: str | None,
        candidates: list[tuple[Entity, float]],
    ) -> Entity | None:
        try:
            verdict = await self._extractor.arbitrateMatch(
                name, entity_type.value, description, context, candidates
            )
        except GenerationError as e:
            logger.warning("Arbitration failed for %r, treating as no match: %s", name, e)
            return None

        if not verdict.is_match or verdict.target_id is None:
            return None
        for entity, _score in candidates:
            if entity.id == verdict.target_id and entity.entity_type == entity_type:
                logger.debug("Matched %r to entity %d: %s", name, entity.id, verdict.reasoning)
                return entity
        logger.debug("Verdict target %s not among candidates for %r", verdict.target_id, name)
        return None
