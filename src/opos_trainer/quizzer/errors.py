"""Error taxonomy for quiz operations."""

from __future__ import annotations

__all__ = [
    "QuizError",
    "ValidationError",
    "RemoteError",
    "InvariantError",
]


class QuizError(RuntimeError):
    """Base class for every user-facing quiz failure."""


class ValidationError(QuizError):
    """Input was rejected before any state changed."""


class RemoteError(QuizError):
    """The remote document store or AI service failed."""


class InvariantError(QuizError):
    """The request would break a rule (e.g. deleting the active user)."""
