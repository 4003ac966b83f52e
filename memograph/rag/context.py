"""Token-budgeted grounding context for reply generation."""

from __future__ import annotations

import logging

from memograph.config import MemographConfig
from memograph.embeddings.base import EmbeddingProvider
from memograph.errors import EmbeddingError
from memograph.extract.prompts import NO_CONTEXT_PLACEHOLDER
from memograph.models import Fact, ResponseContext
from memograph.similarity import rankBySimilarity
from memograph.store import GraphStore
from memograph.tokens import fitLines

logger = logging.getLogger(__name__)


async def buildResponseContext(
    description: str,
    store: GraphStore,
    embedder: EmbeddingProvider,
    config: MemographConfig,
) -> ResponseContext:
    """Build grounding context for a situation description.

    Pipeline:
    1. Embed the description
    2. Rank stored facts by cosine similarity (top_k, min_similarity)
    3. If embedding fails: most recent facts instead
    4. Render `- content` lines, greedily filled up to max_context_tokens
    """
    ctx = config.context
    facts: list[Fact]
    scores: list[float]

    query_embedding: list[float] = []
    try:
        query_embedding = await embedder.embedOne(description)
    except EmbeddingError as e:
        logger.warning("Context embedding failed, falling back to recent facts: %s", e)

    if query_embedding:
        ranked = rankBySimilarity(
            query_embedding,
            store.factsWithEmbeddings(),
            top_k=ctx.top_k,
            min_similarity=ctx.min_similarity,
        )
        facts = [fact for fact, _ in ranked]
        scores = [score for _, score in ranked]
        strategy = "similarity"
    else:
        facts = store.recentFacts(ctx.recency_limit)
        scores = [0.0] * len(facts)
        strategy = "recency"

    if not facts:
        return ResponseContext(query=description, strategy="none", text=NO_CONTEXT_PLACEHOLDER)

    lines, tokens = fitLines([f"- {fact.content}" for fact in facts], ctx.max_context_tokens)
    kept = len(lines)
    return ResponseContext(
        query=description,
        facts=facts[:kept],
        scores=scores[:kept],
        strategy=strategy,
        text="\n".join(lines) if lines else NO_CONTEXT_PLACEHOLDER,
        tokens=tokens,
    )
