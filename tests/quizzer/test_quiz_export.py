from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from fixtures import make_question, make_questions
from opos_trainer.quizzer.errors import ValidationError
from opos_trainer.quizzer.export import (
    backup_filename,
    build_backup,
    render_questions_text,
    restore_backup,
)
from opos_trainer.quizzer.history import HistoryStore
from opos_trainer.quizzer.models import HistoryEntry
from opos_trainer.quizzer.questions import QuestionStore

WHEN = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def test_render_questions_text() -> None:
    text = render_questions_text(
        [make_question(topic="Tema 3"), make_question("¿Otra?")],
        exported_at=WHEN,
    )

    assert "# Total de preguntas: 2" in text
    assert "# Exportado el: 2024-05-01 09:30:00 UTC" in text
    assert "## Pregunta 1\n**Tema:** Tema 3" in text
    assert "**Pregunta:** ¿Otra?" in text
    assert "B) París" in text
    assert text.count("**Respuesta correcta:** B") == 2


def test_backup_filename_uses_date() -> None:
    assert backup_filename(WHEN) == "opos-trainer-backup-2024-05-01.json"


def test_build_backup_shape() -> None:
    question = make_question()
    entry = HistoryEntry(question, True, "Ana", timestamp=WHEN)

    payload = build_backup([question], [entry], exported_at=WHEN)

    assert payload["exportDate"] == WHEN.isoformat()
    assert payload["questions"][0]["text"] == question.text
    assert payload["history"][0]["was_correct"] is True


def test_restore_merges_and_skips_duplicates(tmp_path, memory_store) -> None:
    questions = QuestionStore(memory_store)
    history = HistoryStore(memory_store)
    existing = make_questions(1)[0]
    questions.add(existing)
    fresh = make_question("¿Nueva?")
    backup = tmp_path / "backup.json"
    backup.write_text(
        json.dumps(
            build_backup(
                [existing, fresh],
                [HistoryEntry(fresh, False, "Otro", timestamp=WHEN)],
            )
        ),
        encoding="utf-8",
    )

    summary = restore_backup(backup, questions=questions, history=history, user="Ana")

    assert (summary.questions_added, summary.questions_skipped) == (1, 1)
    assert summary.history_added == 1
    assert [q.text for q in questions] == ["Pregunta 1", "¿Nueva?"]
    assert history.entries_for("Ana")[0].user == "Ana"


def test_restore_accepts_legacy_keys(tmp_path, memory_store) -> None:
    legacy = {
        "preguntas": [
            {
                "question": "¿Legado?",
                "options": ["a", "b", "c", "d"],
                "answer": "d",
                "tema": "Tema 7",
            }
        ],
        "historial": [
            {
                "pregunta": {
                    "question": "¿Legado?",
                    "options": ["a", "b", "c", "d"],
                    "answer": "D",
                    "tema": "Tema 7",
                },
                "acierto": True,
                "fecha": 1714555800000,
            },
            {"acierto": True},
        ],
    }
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps(legacy), encoding="utf-8")
    questions = QuestionStore(memory_store)
    history = HistoryStore(memory_store)

    summary = restore_backup(path, questions=questions, history=history, user="Ana")

    assert summary.questions_added == 1
    assert summary.history_added == 1
    assert questions[0].correct_option == "D"


@pytest.mark.parametrize("content", [None, "{broken", "[1, 2]"])
def test_restore_rejects_bad_files(tmp_path, memory_store, content) -> None:
    path = tmp_path / "bad.json"
    if content is not None:
        path.write_text(content, encoding="utf-8")

    with pytest.raises(ValidationError):
        restore_backup(
            path,
            questions=QuestionStore(memory_store),
            history=HistoryStore(memory_store),
            user="Ana",
        )
