from __future__ import annotations

import random

import pytest

from fixtures import make_question, make_questions
from opos_trainer.quizzer.engine import (
    MODE_LIMITS,
    SessionEngine,
    compute_score,
    select_questions,
)
from opos_trainer.quizzer.errors import InvariantError, ValidationError
from opos_trainer.quizzer.history import HistoryStore
from opos_trainer.quizzer.models import HistoryEntry
from opos_trainer.quizzer.questions import QuestionStore


@pytest.fixture
def stores(memory_store):
    return QuestionStore(memory_store), HistoryStore(memory_store)


def _engine(stores, user: str = "Ana", seed: int = 3) -> SessionEngine:
    questions, history = stores
    return SessionEngine(
        questions, history, lambda: user, rng=random.Random(seed)
    )


@pytest.mark.parametrize(
    "correct, wrong, expected",
    [
        (10, 9, 3.68),
        (0, 0, 0.0),
        (8, 2, 8.0),
        (0, 3, 0.0),
        (1, 2, 3.33),
        (3, 3, 3.33),
        (5, 0, 10.0),
    ],
)
def test_compute_score(correct, wrong, expected) -> None:
    assert compute_score(correct, wrong) == expected


def test_repaso_orders_by_wrong_count() -> None:
    q1, q2, q3 = (make_question(f"Q{n}") for n in (1, 2, 3))
    counts = {q1.key: 3, q2.key: 1}

    ordered = select_questions("repaso", [q3, q2, q1], wrong_counts=counts)

    assert ordered == [q1, q2, q3]


def test_repaso_keeps_pool_order_for_ties() -> None:
    pool = make_questions(5)

    assert select_questions("repaso", pool, wrong_counts={}) == pool


@pytest.mark.parametrize("mode", sorted(MODE_LIMITS))
def test_modes_cap_a_permutation_of_the_pool(mode) -> None:
    pool = make_questions(150)

    picked = select_questions(mode, pool, rng=random.Random(1))

    assert len(picked) == MODE_LIMITS[mode]
    assert len({q.id for q in picked}) == len(picked)
    assert set(picked) <= set(pool)


def test_small_pool_is_fully_shuffled() -> None:
    pool = make_questions(5)

    picked = select_questions("examen", pool, rng=random.Random(1))

    assert sorted(q.text for q in picked) == sorted(q.text for q in pool)


def test_unknown_mode_is_rejected(stores) -> None:
    with pytest.raises(ValidationError):
        select_questions("turbo", make_questions(2))
    stores[0].extend(make_questions(2))
    with pytest.raises(ValidationError):
        _engine(stores).start("turbo")


def test_start_with_empty_pool_changes_nothing(stores) -> None:
    questions, _ = stores
    questions.extend(make_questions(2))
    engine = _engine(stores)
    first = engine.start("corto")

    with pytest.raises(InvariantError):
        engine.start("corto", "Tema 99")

    assert engine.session is first
    assert not first.exited


def test_start_filters_by_topic(stores) -> None:
    questions, _ = stores
    questions.extend(make_questions(3, topic="Tema 1") + make_questions(2, topic="Tema 2"))

    session = _engine(stores).start("examen", "Tema 2")

    assert session.total == 2
    assert {q.topic for q in session.questions} == {"Tema 2"}


def test_repaso_uses_active_user_history(stores) -> None:
    questions, history = stores
    q1, q2, q3 = (make_question(f"Q{n}") for n in (1, 2, 3))
    questions.extend([q3, q2, q1])
    for question, times in ((q1, 3), (q2, 1)):
        for _ in range(times):
            history.append(HistoryEntry(question, False, "Ana"))
    history.append(HistoryEntry(q3, False, "Bea"))

    session = _engine(stores, user="Ana").start("repaso")

    assert [q.text for q in session.questions] == ["Q1", "Q2", "Q3"]


def test_answer_locks_first_choice_and_logs_history(stores) -> None:
    questions, history = stores
    questions.add(make_question(answer="B"))
    engine = _engine(stores)
    engine.start("corto")

    assert engine.answer("b") is True
    assert engine.answer("c") is False

    session = engine.session
    assert session.selected_for(0) == "B"
    entries = history.entries_for("Ana")
    assert len(entries) == 1
    assert entries[0].was_correct is True


def test_answer_rejects_bad_letter(stores) -> None:
    stores[0].add(make_question())
    engine = _engine(stores)
    engine.start("corto")

    with pytest.raises(ValidationError):
        engine.answer("z")
    assert engine.session.answered_count() == 0


def test_answer_without_session(stores) -> None:
    with pytest.raises(InvariantError):
        _engine(stores).answer("A")


def test_advance_and_jump_clamp(stores) -> None:
    stores[0].extend(make_questions(3))
    engine = _engine(stores)
    engine.start("corto")

    assert engine.advance(-1) == 0
    assert engine.advance(1) == 1
    assert engine.advance(1) == 2
    assert engine.advance(1) == 2
    assert engine.jump(-5) == 0
    assert engine.jump(40) == 2


def test_navigation_does_not_require_answers(stores) -> None:
    stores[0].extend(make_questions(2))
    engine = _engine(stores)
    engine.start("corto")

    engine.advance(1)
    engine.answer("A")

    assert engine.session.answers == {1: "A"}


def test_live_score_and_finish(stores) -> None:
    questions, _ = stores
    questions.extend(
        [make_question(f"Q{n}", answer="A") for n in range(1, 5)]
    )
    engine = _engine(stores)
    session = engine.start("corto")
    letters = {q.text: "A" if q.text in {"Q1", "Q2"} else "B" for q in session.questions}
    for index in range(3):
        engine.jump(index)
        engine.answer(letters[session.current.text])

    assert engine.live_score() == session.live_score()

    result = engine.finish()

    assert result.total == 4
    assert result.answered == 3
    assert result.unanswered == 1
    assert result.correct + result.wrong == 3
    assert result.score == compute_score(result.correct, result.wrong)
    assert result.per_topic["Tema 1"].asked == 4
    with pytest.raises(InvariantError):
        engine.answer("A")


def test_finish_result_pass_mark(stores) -> None:
    stores[0].extend([make_question(f"Q{n}", answer="C") for n in range(1, 3)])
    engine = _engine(stores)
    engine.start("corto")
    engine.answer("C")
    engine.advance(1)
    engine.answer("C")

    result = engine.finish()

    assert result.score == 10.0
    assert result.passed is True
    assert all(r.answered and r.is_correct for r in result.responses)


def test_restart_resets_state_and_bumps_generation(stores) -> None:
    stores[0].extend(make_questions(3))
    engine = _engine(stores)
    first = engine.start("corto")
    engine.answer("A")
    engine.advance(1)

    second = engine.start("corto")

    assert second.generation == first.generation + 1
    assert second.answers == {}
    assert second.current_index == 0
    assert first.exited


def test_stale_explanations_are_ignored(stores) -> None:
    stores[0].extend(make_questions(3))
    engine = _engine(stores)
    engine.start("corto")
    ticket = engine.ticket_for()

    assert engine.attach_explanation(ticket, "fresh") is True
    assert engine.session.explanations == {0: "fresh"}

    engine.start("corto")
    assert engine.attach_explanation(ticket, "late") is False
    assert engine.session.explanations == {}

    current = engine.ticket_for(2)
    engine.exit()
    assert engine.session is None
    assert engine.attach_explanation(current, "after exit") is False
