"""Token counting and truncation for prompt budgets."""

from __future__ import annotations

import tiktoken

_encoder: tiktoken.Encoding | None = None


def _getEncoder() -> tiktoken.Encoding:
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def countTokens(text: str) -> int:
    """Count tokens using cl100k_base."""
    return len(_getEncoder().encode(text))


def truncateToTokens(text: str, max_tokens: int) -> str:
    """Truncate text to max_tokens, decoding back to valid UTF-8."""
    if max_tokens <= 0:
        return ""
    enc = _getEncoder()
    tokens = enc.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return enc.decode(tokens[:max_tokens])


def fitLines(lines: list[str], max_tokens: int) -> tuple[list[str], int]:
    """Greedily keep whole lines until the token budget runs out.

    Returns (kept_lines, tokens_used). A first line that alone exceeds the
    budget is truncated rather than dropped so some context always survives.
    """
    kept: list[str] = []
    used = 0
    for line in lines:
        tokens = countTokens(line + "\n")
        if used + tokens > max_tokens:
            if not kept and max_tokens > 0:
                clipped = truncateToTokens(line, max_tokens)
                kept.append(clipped)
                used = countTokens(clipped)
            break
        kept.append(line)
        used += tokens
    return kept, used
