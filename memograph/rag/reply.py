"""Grounded reply generation."""

from __future__ import annotations

from memograph.extract import prompts
from memograph.llm.base import GenerationProvider, TokenCallback
from memograph.models import ResponseContext

REPLY_MAX_TOKENS = 300


async def generateReply(
    generator: GenerationProvider,
    description: str,
    context: ResponseContext,
    on_token: TokenCallback | None = None,
    additional_context: str = "",
) -> str:
    """Generate a reply for the situation, streaming tokens to on_token. Errors propagate."""
    prompt = prompts.replyPrompt(
        context.text or prompts.NO_CONTEXT_PLACEHOLDER, description, additional_context
    )
    text = await generator.complete(
        prompt,
        system_prompt=prompts.REPLY_SYSTEM,
        max_tokens=REPLY_MAX_TOKENS,
        on_token=on_token,
    )
    return text.strip()
