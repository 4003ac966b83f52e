"""System prompts and prompt builders for every model call in the pipeline."""

from __future__ import annotations

# ── Action classification ────────────────────────────────────

CLASSIFY_SYSTEM = """\
You analyze screenshots and decide what to do with them.

Answer with exactly ONE action:
- SAVE_MEMORY: the screenshot holds personal information, facts, preferences or life events worth remembering.
- TAKE_ACTION: the user needs help responding or acting (replying to a message, answering a question).
- BOTH: saving information AND helping with a response are both appropriate.

Format: ACTION_TYPE | short explanation"""

CLASSIFY_PROMPT = """\
Decide what to do with this screenshot.

Consider:
- Is there personal information worth saving (people, preferences, facts, events)?
- Does the user need help replying or taking action?
- Is this a conversation where a reply is expected?

Respond with the action type and brief context."""

# ── Fact extraction ──────────────────────────────────────────

FACT_EXTRACTION_SYSTEM = """\
You extract personal memories about the USER from a screenshot. Keep only
information that is about the user, useful to recall later, meaningful and specific.

ACCEPT, for example:
- "User is pursuing a Skilled Worker visa for the UK"
- "User prefers REST for discrete functions and websockets for real-time chat"
- "User is interested in dating Sarah, who likes hiking"

REJECT, for example:
- what other people said or did (unless it concerns the user's relationships)
- obvious facts such as the user's own name
- ephemeral details: meeting times, temporary errors, notifications, joining channels

Classify each memory as one of:
- fact: verifiable personal information
- preference: likes, dislikes and choices that reveal patterns
- insight: habits, behavioral patterns, working style
- event: personal events, commitments, life changes
- decision: important choices, purchases, commitments

For preferences add structured_data:
{"category": "...", "sub_category": "...", "strength": "weak|moderate|strong"}
Categories: tech, food, fashion, travel, relationships, work, hobbies, health, finance, lifestyle"""

FACT_EXTRACTION_PROMPT = """\
Extract important personal memories from this screenshot.

Return JSON:
{
    "memories": [
        {
            "content": "memory text",
            "memory_type": "fact|preference|insight|event|decision",
            "importance": "low|medium|high",
            "context": "additional context if relevant",
            "structured_data": "{\\"category\\": \\"tech\\", \\"strength\\": \\"strong\\"}"
        }
    ]
}

Only extract genuinely useful personal information. Skip generic or trivial content."""

# ── Batch entity extraction ──────────────────────────────────

ENTITY_EXTRACTION_SYSTEM = """\
You build a knowledge graph. Extract the unique entities and the relationships
between them from the numbered memories.

Entity fields:
- name
- entity_type: person, place, preference, event, topic, project, organization, other
- description: one short sentence
- mentioned_in_memory_indices: 0-based indices of the memories that mention it

Deduplicate inside the batch: "John Doe" and "John" referring to one person are ONE entity.

Relation fields:
- source_name, target_name: entity names
- relation_type: likes, dislikes, prefers, knows, is_friends_with, is_dating,
  interested_in, works_at, studies_at, lives_in, visited, attended,
  participated_in, mentioned, related_to
- description: how they are related"""


def entityExtractionPrompt(facts_text: str) -> str:
    return f"""\
Extract unique entities and their relationships from these memories:

{facts_text}

Return JSON:
{{
    "entities": [
        {{
            "name": "Entity Name",
            "entity_type": "person|place|preference|event|topic|project|organization|other",
            "description": "Brief description",
            "mentioned_in_memory_indices": [0, 2]
        }}
    ],
    "relations": [
        {{
            "source_name": "Entity A",
            "target_name": "Entity B",
            "relation_type": "relation_type",
            "description": "How they are related"
        }}
    ]
}}

Remember:
1. Deduplicate entities
2. Use 0-based memory indices
3. Extract meaningful relationships, not mere co-occurrence"""


# ── Entity arbitration ───────────────────────────────────────

ENTITY_RESOLUTION_SYSTEM = """\
You decide whether a new entity is the same real-world thing as an existing
entity in a knowledge graph.

Rules:
- Be conservative. If unsure, answer false.
- Entity type is a hard signal: entities of different types never match.
- "John Doe" and "Johnathan Doe" likely match when the context agrees.
- "Apple" (organization) and "Apple" (topic, the fruit) do NOT match.
- Different people sharing a first name do NOT match unless clearly the same person."""


def entityResolutionPrompt(
    name: str,
    entity_type: str,
    description: str | None,
    context: str | None,
    candidates: str,
) -> str:
    return f"""\
NEW ENTITY:
Name: {name}
Type: {entity_type}
Description: {description or "N/A"}
Context from memories: {context or "N/A"}

EXISTING CANDIDATES (most similar first):
{candidates}

Is the NEW ENTITY the same real-world thing as one of the candidates?
Be conservative: when ambiguous, answer false.

Return JSON:
{{
    "is_match": true or false,
    "target_id": <ID of the matching candidate or null>,
    "reasoning": "brief explanation"
}}"""


# ── Observation description ──────────────────────────────────

DESCRIBE_SYSTEM = """\
Describe the screenshot concisely. Cover:
- which app or context is shown
- who takes part in any conversation
- what is discussed or requested
- what reply or action might be needed
- personal details that might matter"""

DESCRIBE_PROMPT = """\
Describe this screenshot. What is happening and what might the user need help with?
Include relevant details about people, topics or context."""

# ── Reply generation ─────────────────────────────────────────

REPLY_SYSTEM = """\
You are a personal assistant helping the user respond to messages and situations.
Match the user's communication style, stay authentic, keep replies natural and
short, be witty when it fits, and personalize using what you know about the user."""

NO_CONTEXT_PLACEHOLDER = "No relevant memories found. Generate a generic helpful response."


def replyPrompt(memories: str, situation: str, additional_context: str = "") -> str:
    return f"""\
Help craft a reply based on the user's personality and memories.

RELEVANT MEMORIES ABOUT THE USER:
{memories}

CURRENT SITUATION:
{situation}

ADDITIONAL CONTEXT:
{additional_context}

Write a natural reply the user can send, personalized with their preferences.
Output only the reply text."""


def withObservation(prompt: str, text: str | None) -> str:
    """Append the screenshot's text to an instruction prompt."""
    if not text:
        return prompt
    return f"{prompt}\n\nSCREENSHOT TEXT:\n{text}"
