"""Generation provider protocol."""

from __future__ import annotations

import base64
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

TokenCallback = Callable[[str], None]


@runtime_checkable
class GenerationProvider(Protocol):
    """Interface all text generation providers implement.

    Failures surface as `memograph.errors.GenerationError`.
    """

    @property
    def name(self) -> str: ...

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 512,
        on_token: TokenCallback | None = None,
        images: list[str] | None = None,
    ) -> str:
        """Generate a completion, streaming each partial token to on_token."""
        ...


def encodeImage(path: str) -> str:
    """Read an image file as base64 text."""
    return base64.b64encode(Path(path).expanduser().read_bytes()).decode("ascii")
