"""Model-backed extraction: classify, describe, extract facts/entities, arbitrate matches."""

from __future__ import annotations

import logging

from memograph.config import MemographConfig
from memograph.extract import prompts
from memograph.extract.parser import (
    isLowQuality,
    parseActionClassification,
    parseBatchEntityExtraction,
    parseExtractedFacts,
    parseMatchVerdict,
)
from memograph.llm.base import GenerationProvider
from memograph.models import (
    BatchExtraction,
    Classification,
    Entity,
    ExtractedFact,
    MatchVerdict,
    Observation,
)
from memograph.tokens import truncateToTokens

logger = logging.getLogger(__name__)

CLASSIFY_MAX_TOKENS = 200
DESCRIBE_MAX_TOKENS = 400
FACTS_MAX_TOKENS = 1500
ENTITIES_MAX_TOKENS = 1500
ARBITRATE_MAX_TOKENS = 300


def formatCandidates(candidates: list[tuple[Entity, float]]) -> str:
    lines = []
    for entity, score in candidates:
        lines.append(
            f"- ID: {entity.id} | Name: {entity.name} | Type: {entity.entity_type.value} "
            f"| Score: {score:.2f} | Desc: {entity.description or 'N/A'}"
        )
    return "\n".join(lines)


def formatFacts(facts: list[ExtractedFact]) -> str:
    """Number facts as `[i] content` with an indented context line when present."""
    lines = []
    for i, fact in enumerate(facts):
        lines.append(f"[{i}] {fact.content}")
        if fact.context:
            lines.append(f"    Context: {fact.context}")
    return "\n".join(lines)


class Extractor:
    """Runs every prompt against the generation provider and parses the reply.

    Generation errors propagate; deciding whether a failure is fatal is the
    pipeline's job.
    """

    def __init__(self, generator: GenerationProvider, config: MemographConfig):
        self._generator = generator
        self._config = config

    async def _ask(
        self, observation: Observation, prompt: str, system_prompt: str, max_tokens: int
    ) -> str:
        text = observation.text
        if text:
            text = truncateToTokens(text, self._config.generation.max_observation_tokens)
        images = [observation.image_path] if observation.image_path else None
        return await self._generator.complete(
            prompts.withObservation(prompt, text),
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            images=images,
        )

    async def classifyAction(self, observation: Observation) -> Classification:
        raw = await self._ask(
            observation, prompts.CLASSIFY_PROMPT, prompts.CLASSIFY_SYSTEM, CLASSIFY_MAX_TOKENS
        )
        return parseActionClassification(raw)

    async def describeObservation(self, observation: Observation) -> str:
        raw = await self._ask(
            observation, prompts.DESCRIBE_PROMPT, prompts.DESCRIBE_SYSTEM, DESCRIBE_MAX_TOKENS
        )
        return raw.strip()

    async def extractFacts(self, observation: Observation) -> list[ExtractedFact]:
        raw = await self._ask(
            observation,
            prompts.FACT_EXTRACTION_PROMPT,
            prompts.FACT_EXTRACTION_SYSTEM,
            FACTS_MAX_TOKENS,
        )
        facts = parseExtractedFacts(raw)
        kept = [f for f in facts if not isLowQuality(f.content, self._config.filter)]
        if len(kept) < len(facts):
            logger.debug("Dropped %d low-quality facts", len(facts) - len(kept))
        return kept

    async def extractEntities(self, facts: list[ExtractedFact]) -> BatchExtraction:
        if not facts:
            return BatchExtraction()
        raw = await self._generator.complete(
            prompts.entityExtractionPrompt(formatFacts(facts)),
            system_prompt=prompts.ENTITY_EXTRACTION_SYSTEM,
            max_tokens=ENTITIES_MAX_TOKENS,
        )
        return parseBatchEntityExtraction(raw)

    async def arbitrateMatch(
        self,
        name: str,
        entity_type: str,
        description: str | None,
        context: str | None,
        candidates: list[tuple[Entity, float]],
    ) -> MatchVerdict:
        raw = await self._generator.complete(
            prompts.entityResolutionPrompt(
                name, entity_type, description, context, formatCandidates(candidates)
            ),
            system_prompt=prompts.ENTITY_RESOLUTION_SYSTEM,
            max_tokens=ARBITRATE_MAX_TOKENS,
        )
        return parseMatchVerdict(raw)
