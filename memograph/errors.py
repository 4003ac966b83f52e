"""Typed errors raised by collaborators (providers, storage)."""

from __future__ import annotations


class GenerationError(RuntimeError):
    """Raised when a text generation call fails (transport, HTTP status, payload)."""


class EmbeddingError(RuntimeError):
    """Raised when the embedding API returns an error."""


class DuplicateRelationError(Exception):
    """Raised when a fact link or entity relation already exists."""
