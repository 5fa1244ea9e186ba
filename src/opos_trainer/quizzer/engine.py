"""Test-session engine: selection per mode, answer locking and scoring."""

from __future__ import annotations

import logging
import math
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .errors import InvariantError, ValidationError
from .history import HistoryStore, round_half_up
from .models import ALL_TOPICS, HistoryEntry, Question, normalize_letter
from .questions import QuestionStore

__all__ = [
    "MODES",
    "MODE_LIMITS",
    "PASS_MARK",
    "ExplanationTicket",
    "QuestionResponse",
    "SessionEngine",
    "SessionResult",
    "TestSession",
    "TopicSummary",
    "compute_score",
    "select_questions",
]

MODE_LIMITS: Mapping[str, int] = {
    "examen": 100,
    "largo": 50,
    "corto": 20,
    "repaso": 20,
}
MODES: tuple[str, ...] = tuple(MODE_LIMITS)
PASS_MARK = 5.0

LOGGER = logging.getLogger(__name__)


def compute_score(correct: int, wrong: int) -> float:
    """Score out of 10 where every three wrong answers cancel one correct."""

    answered = correct + wrong
    if answered == 0:
        return 0.0
    effective = correct - math.floor(wrong / 3)
    return max(0.0, round_half_up(effective / answered * 10, 2))


def select_questions(
    mode: str,
    pool: Sequence[Question],
    *,
    wrong_counts: Optional[Mapping[tuple[str, str], int]] = None,
    rng: Optional[random.Random] = None,
) -> List[Question]:
    """Pick the questions for ``mode`` from ``pool``.

    - examen/largo/corto: uniform shuffle, capped at 100/50/20
    - repaso: most-failed first (stable, so ties keep pool order), capped at 20
    """
    if mode not in MODE_LIMITS:
        raise ValidationError(
            f"Unknown mode '{mode}'. Choose one of: {', '.join(MODES)}."
        )
    limit = MODE_LIMITS[mode]
    if mode == "repaso":
        counts = wrong_counts or {}
        ordered = sorted(pool, key=lambda q: counts.get(q.key, 0), reverse=True)
        return ordered[:limit]
    shuffled = list(pool)
    (rng or random.Random()).shuffle(shuffled)
    return shuffled[:limit]


@dataclass(frozen=True)
class ExplanationTicket:
    """Identifies which session/question an in-flight explanation belongs to."""

    generation: int
    index: int


@dataclass(frozen=True)
class QuestionResponse:
    index: int
    question: Question
    selected: Optional[str]
    is_correct: bool

    @property
    def answered(self) -> bool:
        return self.selected is not None


@dataclass(frozen=True)
class TopicSummary:
    """Aggregate performance metrics for a single topic."""

    topic: str
    asked: int
    correct: int

    @property
    def accuracy(self) -> float:
        if self.asked == 0:
            return 0.0
        return self.correct / self.asked


@dataclass(frozen=True)
class SessionResult:
    mode: str
    topic_filter: str
    total: int
    answered: int
    correct: int
    wrong: int
    score: float
    responses: List[QuestionResponse]
    per_topic: Dict[str, TopicSummary] = field(default_factory=dict)

    @property
    def unanswered(self) -> int:
        return self.total - self.answered

    @property
    def passed(self) -> bool:
        return self.score >= PASS_MARK


@dataclass
class TestSession:
    """State of one test; the question order is fixed at creation."""

    __test__ = False  # not a pytest class

    mode: str
    topic_filter: str
    questions: tuple[Question, ...]
    generation: int
    answers: Dict[int, str] = field(default_factory=dict)
    explanations: Dict[int, str] = field(default_factory=dict)
    current_index: int = 0
    finished: bool = False
    exited: bool = False

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current(self) -> Question:
        return self.questions[self.current_index]

    def answered_count(self) -> int:
        return len(self.answers)

    def selected_for(self, index: Optional[int] = None) -> Optional[str]:
        return self.answers.get(self.current_index if index is None else index)

    def is_correct(self, index: int) -> bool:
        selected = self.answers.get(index)
        return selected is not None and selected == self.questions[index].correct_option

    def tally(self) -> tuple[int, int]:
        correct = sum(1 for index in self.answers if self.is_correct(index))
        return correct, len(self.answers) - correct

    def live_score(self) -> float:
        return compute_score(*self.tally())

    def result(self) -> SessionResult:
        responses = [
            QuestionResponse(
                index=index,
                question=question,
                selected=self.answers.get(index),
                is_correct=self.is_correct(index),
            )
            for index, question in enumerate(self.questions)
        ]
        correct, wrong = self.tally()
        return SessionResult(
            mode=self.mode,
            topic_filter=self.topic_filter,
            total=self.total,
            answered=len(self.answers),
            correct=correct,
            wrong=wrong,
            score=compute_score(correct, wrong),
            responses=responses,
            per_topic=_per_topic(responses),
        )


def _per_topic(responses: Sequence[QuestionResponse]) -> Dict[str, TopicSummary]:
    asked: Counter = Counter()
    correct: Counter = Counter()
    for response in responses:
        asked[response.question.topic] += 1
        if response.is_correct:
            correct[response.question.topic] += 1
    return {
        topic: TopicSummary(topic, asked[topic], correct[topic])
        for topic in asked
    }


class SessionEngine:
    """Runs one test session at a time against the question and history stores."""

    def __init__(
        self,
        questions: QuestionStore,
        history: HistoryStore,
        current_user: Callable[[], str],
        *,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.questions = questions
        self.history = history
        self.current_user = current_user
        self.rng = rng or random.Random()
        self.logger = logger or LOGGER
        self._session: Optional[TestSession] = None
        self._generation = 0

    @property
    def session(self) -> Optional[TestSession]:
        return self._session

    def start(self, mode: str, topic_filter: Optional[str] = None) -> TestSession:
        topic = topic_filter or ALL_TOPICS
        pool = self.questions.pool(topic)
        if mode not in MODE_LIMITS:
            raise ValidationError(
                f"Unknown mode '{mode}'. Choose one of: {', '.join(MODES)}."
            )
        if not pool:
            raise InvariantError(
                f"No questions available for '{topic}'. Add or import some first."
            )
        wrong_counts = (
            self.history.wrong_counts(self.current_user())
            if mode == "repaso"
            else None
        )
        selected = select_questions(
            mode, pool, wrong_counts=wrong_counts, rng=self.rng
        )
        if self._session is not None:
            self._session.exited = True
        self._generation += 1
        self._session = TestSession(
            mode=mode,
            topic_filter=topic,
            questions=tuple(selected),
            generation=self._generation,
        )
        self.logger.info(
            "Session started",
            extra={
                "mode": mode,
                "topic": topic,
                "questions": len(selected),
                "user": self.current_user(),
            },
        )
        return self._session

    def _require_session(self) -> TestSession:
        if self._session is None:
            raise InvariantError("No test in progress. Start one first.")
        return self._session

    def answer(self, letter: str) -> bool:
        """Record ``letter`` for the current question.

        The first answer locks the question: later calls return ``False`` and
        change nothing. Each accepted answer is appended to the history log.
        """
        session = self._require_session()
        if session.finished:
            raise InvariantError("The test is finished; answers are frozen.")
        choice = normalize_letter(letter)
        index = session.current_index
        if index in session.answers:
            return False
        session.answers[index] = choice
        question = session.current
        self.history.append(
            HistoryEntry(
                question=question,
                was_correct=choice == question.correct_option,
                user=self.current_user(),
            )
        )
        return True

    def advance(self, direction: int) -> int:
        session = self._require_session()
        step = 1 if direction > 0 else -1 if direction < 0 else 0
        return self.jump(session.current_index + step)

    def jump(self, index: int) -> int:
        session = self._require_session()
        session.current_index = min(max(index, 0), session.total - 1)
        return session.current_index

    def live_score(self) -> float:
        return self._require_session().live_score()

    def finish(self) -> SessionResult:
        session = self._require_session()
        session.finished = True
        result = session.result()
        self.logger.info(
            "Session finished",
            extra={
                "mode": session.mode,
                "score": result.score,
                "correct": result.correct,
                "wrong": result.wrong,
                "unanswered": result.unanswered,
            },
        )
        return result

    def exit(self) -> None:
        if self._session is not None:
            self._session.exited = True
        self._session = None

    def ticket_for(self, index: Optional[int] = None) -> ExplanationTicket:
        session = self._require_session()
        target = session.current_index if index is None else index
        return ExplanationTicket(session.generation, target)

    def attach_explanation(self, ticket: ExplanationTicket, text: str) -> bool:
        """Store ``text`` unless the ticket's session is gone or replaced."""

        session = self._session
        if (
            session is None
            or session.exited
            or session.generation != ticket.generation
            or not 0 <= ticket.index < session.total
        ):
            self.logger.debug(
                "Ignoring stale explanation",
                extra={"generation": ticket.generation, "index": ticket.index},
            )
            return False
        session.explanations[ticket.index] = text
        return True
