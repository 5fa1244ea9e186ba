"""Shared testing fixtures and doubles for the opos_trainer test suite."""

from .openai import OpenAIStub, StatusError  # noqa: F401
from .questions import SAMPLE_IMPORT, make_question, make_questions  # noqa: F401

__all__ = [
    "OpenAIStub",
    "SAMPLE_IMPORT",
    "StatusError",
    "make_question",
    "make_questions",
]
