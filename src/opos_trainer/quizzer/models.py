"""Question, draft and history records shared by the quiz components."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from .errors import ValidationError

LETTERS: tuple[str, ...] = ("A", "B", "C", "D")
ALL_TOPICS = "Todos los temas"
DEFAULT_USER = "Usuario"

# Advisory catalogue of syllabus topics; any non-empty topic is accepted.
TOPIC_CATALOGUE: dict[str, str] = {
    **{f"Tema {n}": f"Parte General - Tema {n}" for n in range(1, 11)},
    **{f"Tema {n}": f"Parte Específica - Tema {n}" for n in range(11, 42)},
}
DEFAULT_TOPIC = "Tema 1"


def topic_label(topic: str) -> str:
    return TOPIC_CATALOGUE.get(topic, topic)


def new_question_id() -> str:
    return uuid.uuid4().hex


def _require_text(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def normalize_letter(value: Any) -> str:
    """Return ``value`` as an upper-case option letter or raise."""

    letter = str(value or "").strip().upper()
    if letter not in LETTERS:
        raise ValidationError(
            f"Answer must be one of {', '.join(LETTERS)}; got {value!r}."
        )
    return letter


@dataclass(frozen=True)
class Question:
    """An immutable multiple-choice question with exactly four options."""

    id: str
    text: str
    options: tuple[str, ...]
    correct_option: str
    topic: str

    def __post_init__(self) -> None:
        if len(self.options) != len(LETTERS):
            raise ValidationError(
                f"A question needs exactly {len(LETTERS)} options; "
                f"got {len(self.options)}."
            )
        object.__setattr__(self, "options", tuple(str(o) for o in self.options))
        object.__setattr__(
            self, "correct_option", normalize_letter(self.correct_option)
        )

    @classmethod
    def create(
        cls,
        text: str,
        options: Sequence[str],
        correct_option: str,
        topic: str,
        *,
        id: str | None = None,
    ) -> "Question":
        return cls(
            id=id or new_question_id(),
            text=_require_text(text, field_name="text"),
            options=tuple(options),
            correct_option=correct_option,
            topic=_require_text(topic, field_name="topic"),
        )

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for de-duplication and wrong-answer counting."""
        return (self.text, self.topic)

    def option_for(self, letter: str) -> str | None:
        try:
            return self.options[LETTERS.index(letter.strip().upper())]
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "answer": self.correct_option,
            "topic": self.topic,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Question":
        """Build a question, accepting legacy ``question``/``tema`` keys."""

        if not isinstance(data, Mapping):
            raise ValidationError("question record must be a mapping")
        text = data.get("text", data.get("question"))
        topic = data.get("topic", data.get("tema"))
        options = data.get("options")
        if not isinstance(options, (list, tuple)):
            raise ValidationError("'options' must be a list of strings.")
        identifier = data.get("id")
        return cls.create(
            text=text,
            options=options,
            correct_option=data.get("answer", data.get("correct_option")),
            topic=topic,
            id=str(identifier) if identifier else None,
        )


@dataclass
class QuestionDraft:
    """A parsed question awaiting topic assignment and confirmation."""

    text: str
    options: list[str]
    answer: str
    topic: str | None = None

    def to_question(self, *, id: str | None = None) -> Question:
        if not self.topic:
            raise ValidationError(f"Draft '{self.text}' has no topic assigned.")
        return Question.create(
            self.text, self.options, self.answer, self.topic, id=id
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HistoryEntry:
    """One answered question; ``question`` is a snapshot, never a live link."""

    question: Question
    was_correct: bool
    user: str
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        # Copy so later edits to the source question cannot leak in.
        object.__setattr__(self, "question", replace(self.question))

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question.to_dict(),
            "was_correct": self.was_correct,
            "timestamp": self.timestamp.isoformat(),
            "user": self.user,
        }

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], *, user: str | None = None
    ) -> "HistoryEntry":
        """Build an entry, accepting legacy ``pregunta``/``acierto`` keys."""

        if not isinstance(data, Mapping):
            raise ValidationError("history record must be a mapping")
        question = Question.from_dict(data.get("question", data.get("pregunta")))
        was_correct = data.get("was_correct", data.get("acierto"))
        owner = user or data.get("user") or data.get("usuario") or DEFAULT_USER
        return cls(
            question=question,
            was_correct=bool(was_correct),
            user=str(owner),
            timestamp=_parse_timestamp(data.get("timestamp", data.get("fecha"))),
        )


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # Legacy records store epoch milliseconds.
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    if isinstance(raw, str) and raw:
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return _utcnow()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return _utcnow()
