"""Authoritative question list, mirrored to durable storage on every change."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Sequence

from ..storage import LocalStore
from .errors import InvariantError, ValidationError
from .models import ALL_TOPICS, Question

__all__ = ["QUESTIONS_KEY", "QuestionStore", "load_question_records"]

QUESTIONS_KEY = "questions"

LOGGER = logging.getLogger(__name__)


def load_question_records(
    records: object, *, logger: logging.Logger | None = None
) -> list[Question]:
    """Convert raw JSON records into questions, skipping malformed ones."""

    log = logger or LOGGER
    if not isinstance(records, list):
        return []
    questions: list[Question] = []
    for position, record in enumerate(records):
        try:
            questions.append(Question.from_dict(record))
        except ValidationError as exc:
            log.warning(
                "Skipping malformed question record",
                extra={"position": position, "error": str(exc)},
            )
    return questions


class QuestionStore:
    """Ordered questions merged from manual entry, imports, remote and cache.

    Every mutation is persisted under ``questions``; a failed write is logged
    by :class:`LocalStore` and the in-memory change stays in place.
    """

    def __init__(
        self,
        local: LocalStore,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.local = local
        self.logger = logger or LOGGER
        self._questions: list[Question] = self._read_cache()

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(list(self._questions))

    def __getitem__(self, index: int) -> Question:
        return self._questions[index]

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    def add(self, question: Question) -> None:
        self._questions.append(question)
        self._persist()

    def extend(self, questions: Iterable[Question]) -> int:
        added = list(questions)
        if added:
            self._questions.extend(added)
            self._persist()
        return len(added)

    def remove(self, index: int, *, confirmed: bool = False) -> Question:
        """Delete the question at ``index``; irreversible, so ask first."""

        if not confirmed:
            raise InvariantError(
                "Deleting a question is irreversible; confirmation required."
            )
        if not 0 <= index < len(self._questions):
            raise ValidationError(
                f"No question at index {index} "
                f"(store holds {len(self._questions)})."
            )
        removed = self._questions.pop(index)
        self._persist()
        self.logger.info(
            "Question removed", extra={"question_id": removed.id}
        )
        return removed

    def replace_all(self, questions: Sequence[Question]) -> None:
        self._questions = list(questions)
        self._persist()

    def merge_new(self, candidates: Iterable[Question]) -> list[Question]:
        """Return the candidates whose ``(text, topic)`` is not yet present."""

        seen = {question.key for question in self._questions}
        fresh: list[Question] = []
        for candidate in candidates:
            if candidate.key in seen:
                continue
            seen.add(candidate.key)
            fresh.append(candidate)
        return fresh

    def absorb(self, candidates: Iterable[Question]) -> list[Question]:
        """Append only the new candidates and return them."""

        fresh = self.merge_new(candidates)
        self.extend(fresh)
        return fresh

    def recover_from_cache(self) -> list[Question]:
        """Pull back persisted questions that are missing from memory."""

        return self.absorb(self._read_cache())

    def topics(self) -> list[str]:
        return list(dict.fromkeys(question.topic for question in self._questions))

    def pool(self, topic_filter: str | None = None) -> list[Question]:
        if not topic_filter or topic_filter == ALL_TOPICS:
            return list(self._questions)
        return [q for q in self._questions if q.topic == topic_filter]

    def _read_cache(self) -> list[Question]:
        records = self.local.load_json(QUESTIONS_KEY, default=[])
        return load_question_records(records, logger=self.logger)

    def _persist(self) -> None:
        self.local.save_json(
            QUESTIONS_KEY, [question.to_dict() for question in self._questions]
        )
