"""Shared AI helper utilities."""

from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv

try:  # Allow module import even when the OpenAI dependency is absent.
    from openai import OpenAI  # type: ignore
except Exception:  # pragma: no cover - optional dependency guard
    OpenAI = None  # type: ignore

__all__ = ["API_KEY_ENV", "load_client", "resolve_api_key"]

API_KEY_ENV = "GROQ_API_KEY"


def resolve_api_key(stored: str | None = None) -> str | None:
    """Return ``stored`` when set, else the key found in the environment."""

    if stored and stored.strip():
        return stored.strip()
    load_dotenv()
    value = os.getenv(API_KEY_ENV, "").strip()
    return value or None


def load_client(api_key: str | None = None, *, base_url: str | None = None) -> Any:
    """Initialize an OpenAI-compatible client for the explanation provider."""
    if OpenAI is None:
        raise RuntimeError(
            "The 'openai' package is required to create a client. "
            "Install it and retry."
        )
    key = resolve_api_key(api_key)
    if not key:
        raise RuntimeError(
            f"{API_KEY_ENV} not found in environment. Set it, add it to .env "
            "or run `opos quiz key set`."
        )
    if base_url:
        return OpenAI(api_key=key, base_url=base_url)
    return OpenAI(api_key=key)
