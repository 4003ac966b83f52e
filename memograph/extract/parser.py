"""Tolerant parsing of generative-model output into typed extraction records.

Model output is never trusted to be well-formed JSON. Every parser here
locates the outermost JSON span, falls back to progressively looser readings,
and resolves to the most conservative default instead of raising.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from memograph.config import FilterConfig
from memograph.models import (
    ActionKind,
    BatchExtraction,
    Classification,
    ExtractedEntity,
    ExtractedFact,
    ExtractedRelation,
    FactKind,
    Importance,
    MatchVerdict,
)

logger = logging.getLogger(__name__)

FALLBACK_LINE_MIN_CHARS = 20
_BULLETS = "-*•"


def _span(text: str, open_char: str, close_char: str) -> str | None:
    """Return text from the first open_char to the last close_char, or None."""
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value)


# ── Classification ───────────────────────────────────────────


def parseActionClassification(text: str) -> Classification:
    """Parse `ACTION | context` output. BOTH beats TAKE_ACTION beats SAVE_MEMORY."""
    head, sep, rest = text.partition("|")
    upper = head.upper()
    if "BOTH" in upper:
        kind = ActionKind.BOTH
    elif "TAKE_ACTION" in upper:
        kind = ActionKind.TAKE_ACTION
    elif "SAVE_MEMORY" in upper:
        kind = ActionKind.SAVE_MEMORY
    else:
        logger.debug("No action keyword in classifier output, defaulting to SAVE_MEMORY")
        kind = ActionKind.SAVE_MEMORY
    context = rest.strip() if sep else text.strip()
    return Classification(action_kind=kind, context_text=context)


# ── Facts ────────────────────────────────────────────────────


def _factFromDict(item: Any) -> ExtractedFact | None:
    if not isinstance(item, dict):
        return None
    content = _str(item.get("content"))
    if not content:
        return None
    structured = item.get("structured_data")
    if isinstance(structured, (dict, list)):
        structured = json.dumps(structured)
    return ExtractedFact(
        content=content,
        kind=FactKind.parse(_str(item.get("memory_type", item.get("kind")))),
        importance=Importance.parse(_str(item.get("importance"))),
        context=_str(item.get("context")),
        structured_data=_str(structured),
    )


def _factsFromList(items: Any) -> list[ExtractedFact]:
    if not isinstance(items, list):
        return []
    facts = []
    for item in items:
        fact = _factFromDict(item)
        if fact is not None:
            facts.append(fact)
    return facts


def _factsFromLines(text: str) -> list[ExtractedFact]:
    facts = []
    for line in text.splitlines():
        content = line.strip().lstrip(_BULLETS).strip()
        if len(content) > FALLBACK_LINE_MIN_CHARS:
            facts.append(ExtractedFact(content=content))
    return facts


def parseExtractedFacts(text: str) -> list[ExtractedFact]:
    """Parse fact extraction output.

    Tries, in order:
    1. the outermost `{...}` as an object with a `memories` array,
    2. the outermost `[...]` as a bare array of fact objects,
    3. every non-blank line longer than 20 characters as a default fact.
    """
    obj_start = text.find("{")
    arr_start = text.find("[")
    # A bare array of objects also contains a {...} span; read it as an array
    wrapped_in_array = arr_start != -1 and arr_start < obj_start

    obj_span = _span(text, "{", "}")
    if obj_span is not None:
        try:
            data = json.loads(obj_span)
            if isinstance(data, dict) and ("memories" in data or not wrapped_in_array):
                return _factsFromList(data.get("memories"))
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug("Fact object parse failed, trying array: %s", e)

    arr_span = _span(text, "[", "]")
    if arr_span is not None:
        try:
            return _factsFromList(json.loads(arr_span))
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug("Fact array parse failed, falling back to lines: %s", e)

    return _factsFromLines(text)


# ── Entities & relations ─────────────────────────────────────


def _indices(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    # bool is an int subclass; indices never are
    return [v for v in value if isinstance(v, int) and not isinstance(v, bool)]


def parseBatchEntityExtraction(text: str) -> BatchExtraction:
    span = _span(text, "{", "}")
    if span is None:
        logger.debug("No JSON object in entity extraction output")
        return BatchExtraction()
    try:
        data = json.loads(span)
        if not isinstance(data, dict):
            return BatchExtraction()
        entities = []
        for item in data.get("entities") or []:
            if not isinstance(item, dict):
                continue
            name = _str(item.get("name"))
            if not name:
                continue
            entities.append(
                ExtractedEntity(
                    name=name,
                    entity_type=_str(item.get("entity_type", item.get("type"))) or "other",
                    description=_str(item.get("description")),
                    mention_indices=_indices(
                        item.get("mentioned_in_memory_indices", item.get("mention_indices"))
                    ),
                )
            )
        relations = []
        for item in data.get("relations") or []:
            if not isinstance(item, dict):
                continue
            source = _str(item.get("source_name"))
            target = _str(item.get("target_name"))
            if not source or not target:
                continue
            relations.append(
                ExtractedRelation(
                    source_name=source,
                    target_name=target,
                    relation_type=_str(item.get("relation_type")) or "related_to",
                    description=_str(item.get("description")),
                )
            )
        return BatchExtraction(entities=entities, relations=relations)
    except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
        logger.debug("Entity extraction parse failed: %s", e)
        return BatchExtraction()


# ── Match verdicts ───────────────────────────────────────────


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _id(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def parseMatchVerdict(text: str) -> MatchVerdict:
    """Parse an arbitration verdict. Anything unreadable is "no match"."""
    span = _span(text, "{", "}")
    if span is None:
        return MatchVerdict(reasoning="Failed to parse response")
    try:
        data = json.loads(span)
        if not isinstance(data, dict):
            return MatchVerdict(reasoning="Failed to parse response")
        return MatchVerdict(
            is_match=_bool(data.get("is_match")),
            target_id=_id(data.get("target_id")),
            reasoning=_str(data.get("reasoning")) or "No reasoning provided",
        )
    except (json.JSONDecodeError, ValueError) as e:
        logger.debug("Match verdict parse failed: %s", e)
        return MatchVerdict(reasoning=f"Parse error: {e}")


# ── Quality filter ───────────────────────────────────────────


def isLowQuality(content: str, config: FilterConfig | None = None) -> bool:
    """True if a fact is too short or matches a trivial pattern."""
    config = config or FilterConfig()
    if len(content) < config.min_length:
        return True
    lowered = content.lower()
    return any(pattern.lower() in lowered for pattern in config.low_quality_patterns)
