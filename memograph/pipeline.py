"""Pipeline orchestration: one observation in, facts/entities/relations and an optional reply out.

Flow:
    initialize → classify → memory branch and/or action branch → complete

Memory branch:
    extract_facts → embed_and_save → extract_entities → resolve_entities → create_relations
Action branch:
    describe → build_context → generate_response

Every stage is a history step and a progress boundary. The first unrecoverable
error aborts the run; writes already committed stay committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from memograph.config import MemographConfig
from memograph.embeddings.base import EmbeddingProvider
from memograph.errors import DuplicateRelationError, EmbeddingError, GenerationError
from memograph.extract.extractor import Extractor
from memograph.history import RunHistory
from memograph.llm.base import GenerationProvider, TokenCallback
from memograph.models import (
    ActionKind,
    BatchExtraction,
    EntityType,
    ExtractedFact,
    Fact,
    Observation,
    PipelineOutcome,
    PipelineResult,
    PipelineState,
    PipelineStatus,
    RunStatus,
)
from memograph.rag.context import buildResponseContext
from memograph.rag.reply import generateReply
from memograph.resolution import EntityResolver, ResolutionCache, normalizeName
from memograph.store import GraphStore

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState], None]

# Progress windows (start, end) for each branch
MEMORY_SPAN = (0.15, 0.9)
ACTION_SPAN = (0.15, 0.95)
MEMORY_SPAN_BOTH = (0.15, 0.6)
ACTION_SPAN_BOTH = (0.6, 0.95)


def normalizeRelationType(relation_type: str) -> str:
    return relation_type.strip().lower().replace(" ", "_")


def mentionContext(
    indices: list[int], facts: list[Fact], max_facts: int = 3, snippet_chars: int = 200
) -> str | None:
    """Join snippets of the first few in-range mentioned facts with ` | `."""
    snippets = [
        facts[i].content[:snippet_chars] for i in indices[:max_facts] if 0 <= i < len(facts)
    ]
    return " | ".join(snippets) or None


class Pipeline:
    """Processes observations one at a time. Use one instance per concurrent run."""

    def __init__(
        self,
        store: GraphStore,
        embedder: EmbeddingProvider,
        generator: GenerationProvider,
        config: MemographConfig,
        history: RunHistory | None = None,
    ):
        self._store = store
        self._embedder = embedder
        self._generator = generator
        self._config = config
        self._history = history or RunHistory(store)
        self._extractor = Extractor(generator, config)
        self._state = PipelineState()
        self._subscribers: list[StateCallback] = []

    # ── Progress ─────────────────────────────────────────────

    @property
    def state(self) -> PipelineState:
        return self._state

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register an observer of state changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def reset(self) -> None:
        self._emit(PipelineState())

    def _emit(self, state: PipelineState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.warning("Pipeline state observer failed", exc_info=True)

    def _update(self, status: PipelineStatus, step: str, progress: float) -> None:
        # Progress never moves backwards within a run
        progress = max(self._state.progress, min(progress, 1.0))
        self._emit(PipelineState(status=status, current_step=step, progress=progress))

    # ── Run ──────────────────────────────────────────────────

    async def process(
        self, observation: Observation, on_token: TokenCallback | None = None
    ) -> PipelineOutcome:
        """Run the full pipeline. Stage failures come back as a failed outcome, never raised."""
        self._emit(PipelineState())
        cache = ResolutionCache()
        resolver = EntityResolver(
            self._store, self._embedder, self._extractor, cache, self._config.resolution
        )
        run_id = self._history.start(observation.ref)
        logger.info("Run %s started for %s", run_id, observation.ref)
        classification = None
        result: PipelineResult | None = None
        description: str | None = None

        try:
            self._update(PipelineStatus.INITIALIZING, "Initializing...", 0.05)
            with self._history.step(run_id, "initialize") as step:
                step.details = f"generator={self._generator.name} embedder={self._embedder.name}"

            self._update(PipelineStatus.ANALYZING, "Analyzing observation...", 0.1)
            with self._history.step(run_id, "classify") as step:
                classification = await self._extractor.classifyAction(observation)
                step.details = classification.action_kind.value
            kind = classification.action_kind
            description = classification.context_text

            result = PipelineResult(run_id=run_id, action_kind=kind, description=description)

            if kind in (ActionKind.SAVE_MEMORY, ActionKind.BOTH):
                span = MEMORY_SPAN_BOTH if kind == ActionKind.BOTH else MEMORY_SPAN
                await self._memoryBranch(observation, run_id, resolver, result, span)

            if kind in (ActionKind.TAKE_ACTION, ActionKind.BOTH):
                span = ACTION_SPAN_BOTH if kind == ActionKind.BOTH else ACTION_SPAN
                await self._actionBranch(
                    observation, run_id, classification.context_text, result, span, on_token
                )

            self._history.finish(run_id, RunStatus.COMPLETED, result=result)
            self._emit(
                PipelineState(
                    status=PipelineStatus.COMPLETE, current_step="Done", progress=1.0, result=result
                )
            )
            logger.info(
                "Run %s complete (%s): %d facts, %d entities created, %d matched, %d relations",
                run_id,
                kind.value,
                result.facts_saved,
                result.entities_created,
                result.entities_matched,
                result.relations_created,
            )
            return PipelineOutcome(ok=True, result=result)

        except Exception as e:
            logger.exception("Run %s failed", run_id)
            self._history.finish(
                run_id,
                RunStatus.ERROR,
                result=result,
                error_message=str(e),
                action_kind=classification.action_kind.value if classification else None,
                description=description,
            )
            self._emit(
                PipelineState(
                    status=PipelineStatus.ERROR,
                    current_step=f"Error: {e}",
                    progress=self._state.progress,
                    error=str(e),
                )
            )
            return PipelineOutcome(ok=False, error=str(e))

        finally:
            resolver.clearCache()

    # ── Memory branch ────────────────────────────────────────

    async def _memoryBranch(
        self,
        observation: Observation,
        run_id: int | None,
        resolver: EntityResolver,
        result: PipelineResult,
        span: tuple[float, float],
    ) -> None:
        lo, hi = span

        def at(fraction: float) -> float:
            return lo + (hi - lo) * fraction

        self._update(PipelineStatus.EXTRACTING_MEMORIES, "Extracting memories...", at(0.0))
        with self._history.step(run_id, "extract_facts") as step:
            extracted = await self._extractor.extractFacts(observation)
            step.details = f"{len(extracted)} facts"
        if not extracted:
            return

        with self._history.step(run_id, "embed_and_save") as step:
            saved = await self._saveFacts(observation, extracted, at)
            result.facts_saved = len(saved)
            unembedded = sum(1 for f in saved if not f.embedding)
            step.details = f"{len(saved)} saved, {unembedded} without embedding"

        self._update(PipelineStatus.EXTRACTING_ENTITIES, "Extracting entities...", at(0.5))
        with self._history.step(run_id, "extract_entities") as step:
            batch = await self._extractor.extractEntities(extracted)
            step.details = f"{len(batch.entities)} entities, {len(batch.relations)} relations"
        if not batch.entities:
            return

        self._update(PipelineStatus.RESOLVING_ENTITIES, "Resolving entities...", at(0.6))
        with self._history.step(run_id, "resolve_entities") as step:
            resolved = await self._resolveEntities(batch, saved, resolver, result, at)
            step.details = (
                f"{result.entities_created} created, {result.entities_matched} matched"
            )

        self._update(PipelineStatus.CREATING_RELATIONS, "Creating fact-entity links...", at(0.85))
        with self._history.step(run_id, "create_relations") as step:
            links = self._linkFacts(batch, saved, resolved)
            self._update(
                PipelineStatus.CREATING_RELATIONS, "Creating entity-entity relations...", at(0.95)
            )
            relations = self._linkEntities(batch, resolved)
            result.relations_created = links + relations
            step.details = f"{links} fact links, {relations} entity relations"

        self._update(PipelineStatus.CREATING_RELATIONS, "Memories saved", at(1.0))

    async def _saveFacts(
        self,
        observation: Observation,
        extracted: list[ExtractedFact],
        at: Callable[[float], float],
    ) -> list[Fact]:
        saved: list[Fact] = []
        total = len(extracted)
        for i, fact in enumerate(extracted):
            fraction = 0.5 * (i + 1) / total
            self._update(
                PipelineStatus.GENERATING_EMBEDDINGS,
                f"Generating embedding {i + 1}/{total}...",
                at(fraction - 0.05),
            )
            try:
                embedding = await self._embedder.embedOne(fact.content)
            except EmbeddingError as e:
                logger.warning("Embedding failed for fact %d, saving without vector: %s", i, e)
                embedding = []
            self._update(
                PipelineStatus.SAVING_DATA, f"Saving memory {i + 1}/{total}...", at(fraction)
            )
            saved.append(
                self._store.insertFact(
                    fact,
                    embedding,
                    source_ref=observation.ref,
                    source_image_path=observation.image_path,
                )
            )
        return saved

    async def _resolveEntities(
        self,
        batch: BatchExtraction,
        saved: list[Fact],
        resolver: EntityResolver,
        result: PipelineResult,
        at: Callable[[float], float],
    ) -> dict[str, int]:
        """Resolve every extracted entity. Returns normalized name → entity id."""
        resolved: dict[str, int] = {}
        cfg = self._config.resolution
        total = len(batch.entities)
        for i, extracted in enumerate(batch.entities):
            self._update(
                PipelineStatus.RESOLVING_ENTITIES,
                f"Resolving entity {i + 1}/{total}: {extracted.name}",
                at(0.6 + 0.2 * (i + 1) / total),
            )
            resolution = await resolver.resolve(
                extracted.name,
                EntityType.parse(extracted.entity_type),
                description=extracted.description,
                context=mentionContext(
                    extracted.mention_indices,
                    saved,
                    max_facts=cfg.max_context_facts,
                    snippet_chars=cfg.context_snippet_chars,
                ),
            )
            resolved[normalizeName(extracted.name)] = resolution.entity.id
            if resolution.created:
                result.entities_created += 1
            else:
                result.entities_matched += 1
        return resolved

    def _linkFacts(
        self, batch: BatchExtraction, saved: list[Fact], resolved: dict[str, int]
    ) -> int:
        created = 0
        for extracted in batch.entities:
            entity_id = resolved.get(normalizeName(extracted.name))
            if entity_id is None:
                continue
            for index in extracted.mention_indices:
                if not 0 <= index < len(saved):
                    logger.debug("Skipping out-of-range mention %d for %s", index, extracted.name)
                    continue
                try:
                    self._store.linkFactToEntity(saved[index].id, entity_id)
                    created += 1
                except DuplicateRelationError:
                    pass
        return created

    def _linkEntities(self, batch: BatchExtraction, resolved: dict[str, int]) -> int:
        created = 0
        for relation in batch.relations:
            source_id = resolved.get(normalizeName(relation.source_name))
            target_id = resolved.get(normalizeName(relation.target_name))
            if source_id is None or target_id is None or source_id == target_id:
                continue
            try:
                self._store.insertRelation(
                    source_id,
                    target_id,
                    normalizeRelationType(relation.relation_type),
                    relation.description,
                )
                created += 1
            except DuplicateRelationError:
                pass
        return created

    # ── Action branch ────────────────────────────────────────

    async def _actionBranch(
        self,
        observation: Observation,
        run_id: int | None,
        classifier_context: str,
        result: PipelineResult,
        span: tuple[float, float],
        on_token: TokenCallback | None,
    ) -> None:
        lo, hi = span

        def at(fraction: float) -> float:
            return lo + (hi - lo) * fraction

        self._update(PipelineStatus.GENERATING_RESPONSE, "Describing observation...", at(0.0))
        with self._history.step(run_id, "describe") as step:
            try:
                description = await self._extractor.describeObservation(observation)
            except GenerationError as e:
                logger.warning("Description failed, using classifier context: %s", e)
                description = ""
            if not description:
                description = classifier_context
                step.details = "fallback: classifier context"
        result.description = description

        self._update(PipelineStatus.GENERATING_RESPONSE, "Finding relevant context...", at(0.4))
        with self._history.step(run_id, "build_context") as step:
            context = await buildResponseContext(
                description, self._store, self._embedder, self._config
            )
            step.details = f"{len(context.facts)} facts via {context.strategy}"

        self._update(PipelineStatus.GENERATING_RESPONSE, "Generating response...", at(0.6))
        # Classifier context only adds information when the description came from the model
        extra = "" if description == classifier_context else classifier_context
        with self._history.step(run_id, "generate_response") as step:
            result.generated_response = await generateReply(
                self._generator,
                description,
                context,
                on_token=on_token,
                additional_context=extra,
            )
            step.details = f"{len(result.generated_response)} chars"
        self._update(PipelineStatus.GENERATING_RESPONSE, "Response ready", at(1.0))
