"""AI explanations for answered questions, returned as typed results.

Calls go through an OpenAI-compatible chat completion client. Nothing here
retries: a failure becomes an :class:`ExplanationResult` carrying a
classified reason and a message the caller can show in place of the text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from ..core.ai import load_client
from .models import LETTERS, Question

__all__ = [
    "ExplanationFailure",
    "ExplanationResult",
    "ExplanationSettings",
    "build_prompts",
    "classify_status",
    "request_explanation",
]

LOGGER = logging.getLogger(__name__)


class ExplanationFailure(str, Enum):
    MISSING_KEY = "missing key"
    INVALID_KEY = "invalid key"
    RATE_LIMITED = "rate limited"
    MALFORMED = "malformed request"
    UNKNOWN = "unknown"


_MESSAGES = {
    ExplanationFailure.MISSING_KEY: (
        "No API key configured. Run `opos quiz key set <key>` to enable "
        "explanations."
    ),
    ExplanationFailure.INVALID_KEY: "Invalid API key. Check the stored key.",
    ExplanationFailure.RATE_LIMITED: (
        "Rate limit exceeded. Wait a moment and try again."
    ),
    ExplanationFailure.MALFORMED: "The explanation request was malformed.",
    ExplanationFailure.UNKNOWN: "Could not get an explanation.",
}


@dataclass(frozen=True)
class ExplanationSettings:
    model: str = "llama3-8b-8192"
    api_base: Optional[str] = "https://api.groq.com/openai/v1"
    max_tokens: int = 150
    temperature: float = 0.1


@dataclass(frozen=True)
class ExplanationResult:
    text: str
    failure: Optional[ExplanationFailure] = None
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(
        cls,
        failure: ExplanationFailure,
        *,
        status: Optional[int] = None,
        detail: str = "",
    ) -> "ExplanationResult":
        message = _MESSAGES[failure]
        if detail and failure is ExplanationFailure.UNKNOWN:
            message = f"{message} ({detail})"
        return cls(text=message, failure=failure, status=status)


def classify_status(status: Optional[int]) -> ExplanationFailure:
    """Map an HTTP status code onto a failure reason."""

    if status == 401:
        return ExplanationFailure.INVALID_KEY
    if status == 429:
        return ExplanationFailure.RATE_LIMITED
    if status == 400:
        return ExplanationFailure.MALFORMED
    return ExplanationFailure.UNKNOWN


def build_prompts(question: Question, user_answer: str) -> Tuple[str, str]:
    system_prompt = (
        "Eres un preparador de oposiciones español que da explicaciones "
        "ultra-concisas. Máximo 80 palabras por respuesta. Incluye siempre "
        "la base legal específica (artículo, ley) al inicio. Formato: "
        '"[Base legal] - [Explicación breve]".'
    )
    options = "\n".join(
        f"{letter}) {text}" for letter, text in zip(LETTERS, question.options)
    )
    correct = question.correct_option
    third = (
        f"Por qué {user_answer} es incorrecta"
        if user_answer != correct
        else "Concepto clave"
    )
    user_prompt = (
        "Proporciona una explicación BREVE y CONCISA:\n\n"
        f"PREGUNTA: {question.text}\n"
        f"TEMA: {question.topic}\n\n"
        f"OPCIONES:\n{options}\n\n"
        f"RESPUESTA CORRECTA: {correct}\n"
        f"TU RESPUESTA: {user_answer}\n\n"
        "Explica en MÁXIMO 80 palabras:\n"
        "1. Base legal (artículo/ley específica)\n"
        f"2. Por qué {correct} es correcta\n"
        f"3. {third}"
    )
    return system_prompt, user_prompt


def request_explanation(
    question: Question,
    user_answer: str,
    api_key: Optional[str],
    *,
    settings: Optional[ExplanationSettings] = None,
    client: Any = None,
    logger: Optional[logging.Logger] = None,
) -> ExplanationResult:
    """Ask the provider why ``question``'s answer is right and ``user_answer`` is not."""

    log = logger or LOGGER
    cfg = settings or ExplanationSettings()
    if client is None:
        if not api_key:
            return ExplanationResult.failed(ExplanationFailure.MISSING_KEY)
        try:
            client = load_client(api_key, base_url=cfg.api_base)
        except RuntimeError as exc:
            log.error("Explanation client unavailable", extra={"error": str(exc)})
            return ExplanationResult.failed(
                ExplanationFailure.UNKNOWN, detail=str(exc)
            )

    system_prompt, user_prompt = build_prompts(question, user_answer)
    try:
        resp = client.chat.completions.create(
            model=cfg.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
        )
    except Exception as exc:  # SDK errors carry ``status_code`` when HTTP-level
        status = getattr(exc, "status_code", None)
        failure = classify_status(status)
        log.warning(
            "Explanation request failed",
            extra={
                "status": status,
                "failure": failure.value,
                "question_id": question.id,
                "error": str(exc),
            },
        )
        return ExplanationResult.failed(
            failure, status=status, detail=type(exc).__name__
        )

    try:
        content = (resp.choices[0].message.content or "").strip()
    except (AttributeError, IndexError, TypeError):
        content = ""
    if not content:
        log.warning(
            "Unexpected explanation response",
            extra={"question_id": question.id},
        )
        return ExplanationResult.failed(
            ExplanationFailure.UNKNOWN, detail="empty response"
        )
    return ExplanationResult(text=content)
