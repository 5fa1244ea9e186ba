from __future__ import annotations

import json
import random
from dataclasses import replace

import pytest

from fixtures import (
    SAMPLE_IMPORT,
    OpenAIStub,
    StatusError,
    make_question,
    make_questions,
)
from opos_trainer.core.workspace import ensure_workspace
from opos_trainer.quizzer.config import default_config
from opos_trainer.quizzer.errors import InvariantError, ValidationError
from opos_trainer.quizzer.explain import ExplanationFailure
from opos_trainer.quizzer.remote import JsonDocumentRemote, RemoteResult
from opos_trainer.quizzer.service import TrainerService, build_service, mask_key
from opos_trainer.storage import DirectoryBackend, LocalStore, MemoryBackend


class _DownRemote:
    def add_question(self, text, options, correct_letter, topic, *, id=None):
        return RemoteResult(False, "Could not add the question remotely.")

    def list_questions(self):
        return []


def _service_with(memory_store, *, client=None, auto_explain=True, remote=None):
    cfg = default_config()
    cfg = replace(cfg, ai=replace(cfg.ai, auto_explain=auto_explain))
    return TrainerService(
        cfg, memory_store, client=client, remote=remote, rng=random.Random(1)
    )


def test_mask_key() -> None:
    assert mask_key(None) == "(not set)"
    assert mask_key("short") == "*****"
    assert mask_key("gsk_abcdefgh1234") == "gsk_...1234"


def test_wrong_answer_triggers_explanation(memory_store) -> None:
    stub = OpenAIStub("Art. 14 CE - Igualdad.")
    service = _service_with(memory_store, client=stub)
    service.questions.add(make_question(answer="B"))
    service.start_test("corto")

    outcome = service.answer("A")

    assert outcome.accepted and not outcome.is_correct
    assert outcome.explanation is not None and outcome.explanation.ok
    assert service.session.explanations == {0: "Art. 14 CE - Igualdad."}

    again = service.explain()
    assert again.text == "Art. 14 CE - Igualdad."
    assert len(stub.calls) == 1


def test_correct_answer_does_not_call_ai(memory_store) -> None:
    stub = OpenAIStub("unused")
    service = _service_with(memory_store, client=stub)
    service.questions.add(make_question(answer="B"))
    service.start_test("corto")

    outcome = service.answer("B")

    assert outcome.is_correct
    assert outcome.explanation is None
    assert stub.calls == []


def test_auto_explain_can_be_disabled(memory_store) -> None:
    stub = OpenAIStub("unused")
    service = _service_with(memory_store, client=stub, auto_explain=False)
    service.questions.add(make_question(answer="B"))
    service.start_test("corto")

    assert service.answer("A").explanation is None
    assert stub.calls == []


def test_no_key_means_no_automatic_request(service) -> None:
    service.questions.add(make_question(answer="B"))
    service.start_test("corto")

    assert service.answer("A").explanation is None
    result = service.explain()
    assert result.failure is ExplanationFailure.MISSING_KEY


def test_failed_explanation_is_not_cached(memory_store) -> None:
    stub = OpenAIStub(error=StatusError(429))
    service = _service_with(memory_store, client=stub)
    service.questions.add(make_question(answer="B"))
    service.start_test("corto")

    outcome = service.answer("C")

    assert outcome.explanation.failure is ExplanationFailure.RATE_LIMITED
    assert service.session.explanations == {}


def test_explain_requires_an_answer(service) -> None:
    service.questions.extend(make_questions(2))
    service.start_test("corto")

    with pytest.raises(InvariantError):
        service.explain()


def test_explain_without_session(service) -> None:
    with pytest.raises(InvariantError):
        service.explain()


def test_add_and_remove_question(service) -> None:
    question, remote = service.add_question(
        "¿Nueva?", ["a", "b", "c", "d"], "d", "Tema 2"
    )

    assert remote is None
    assert service.questions[0] == question
    with pytest.raises(InvariantError):
        service.remove_question(0, confirmed=False)
    assert service.remove_question(0, confirmed=True) == question
    assert len(service.questions) == 0


def test_add_question_validates_before_storing(service) -> None:
    with pytest.raises(ValidationError):
        service.add_question("¿Mal?", ["a", "b", "c"], "A", "Tema 1")
    with pytest.raises(ValidationError):
        service.add_question("¿Mal?", ["a", "b", "c", "d"], "E", "Tema 1")
    assert len(service.questions) == 0


def test_add_question_through_remote(tmp_path, memory_store) -> None:
    remote = JsonDocumentRemote(tmp_path / "doc.json")
    service = _service_with(memory_store, remote=remote)
    service.questions.extend(make_questions(2))

    _, result = service.add_question("¿Remota?", ["a", "b", "c", "d"], "A", "Tema 1")

    assert result.success
    assert [q.text for q in service.questions] == ["¿Remota?"]


def test_remote_add_returns_the_stored_question(tmp_path, memory_store) -> None:
    remote = JsonDocumentRemote(tmp_path / "doc.json")
    service = _service_with(memory_store, remote=remote)

    question, result = service.add_question(
        "¿Remota?", ["a", "b", "c", "d"], "A", "Tema 1"
    )

    assert result.success
    assert [q.id for q in service.questions] == [question.id]
    assert [q.id for q in remote.list_questions()] == [question.id]


class _RenumberingRemote:
    def __init__(self) -> None:
        self.stored = []

    def add_question(self, text, options, correct_letter, topic, *, id=None):
        self.stored.append(
            make_question(
                text,
                topic=topic,
                answer=correct_letter,
                options=options,
                id="remote-1",
            )
        )
        return RemoteResult(True, "Question added.", count=1)

    def list_questions(self):
        return list(self.stored)


def test_remote_add_matches_reloaded_question_by_text(memory_store) -> None:
    service = _service_with(memory_store, remote=_RenumberingRemote())

    question, result = service.add_question(
        "¿Remota?", ["a", "b", "c", "d"], "A", "Tema 1"
    )

    assert result.success
    assert question.id == "remote-1"
    assert service.questions.questions == [question]


def test_failed_remote_add_keeps_question_locally(memory_store) -> None:
    service = _service_with(memory_store, remote=_DownRemote())

    question, result = service.add_question(
        "¿Local?", ["a", "b", "c", "d"], "A", "Tema 1"
    )

    assert not result.success
    assert service.questions.questions == [question]


def test_sync_without_remote(service) -> None:
    assert not service.sync_remote().success


def test_import_flow(tmp_path, service) -> None:
    source = tmp_path / "banco"
    source.mkdir()
    (source / "tema5.txt").write_text(SAMPLE_IMPORT, encoding="utf-8")
    (source / "notes.md").write_text(SAMPLE_IMPORT, encoding="utf-8")

    batch = service.prepare_import([source], topic="Tema 5")
    batch.assign_topic(1, "Tema 6")
    report = service.commit_import(batch)

    assert (report.parsed, report.added, report.skipped) == (2, 2, 0)
    assert [q.topic for q in service.questions] == ["Tema 5", "Tema 6"]

    again = service.commit_import(
        service.prepare_import([source], topic="Tema 5"), skip_duplicates=True
    )
    assert (again.added, again.skipped) == (1, 1)


def test_import_errors(tmp_path, service) -> None:
    with pytest.raises(ValidationError):
        service.prepare_import([tmp_path / "missing.txt"])
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(ValidationError):
        service.prepare_import([empty])


def test_recover_questions(memory_store) -> None:
    stale = _service_with(memory_store)
    writer = _service_with(memory_store)
    writer.questions.extend(make_questions(2))

    recovered = stale.recover_questions()

    assert [q.text for q in recovered] == ["Pregunta 1", "Pregunta 2"]


def test_export_text(tmp_path, service) -> None:
    with pytest.raises(InvariantError):
        service.export_text(tmp_path / "out.txt")
    service.questions.extend(make_questions(2))

    path = service.export_text(tmp_path / "out.txt")

    assert "# Total de preguntas: 2" in path.read_text(encoding="utf-8")


def test_backup_and_restore_between_services(tmp_path, service) -> None:
    service.questions.extend(make_questions(2))
    service.start_test("corto")
    service.answer("B")
    backup = service.export_backup(tmp_path / "backup.json")

    payload = json.loads(backup.read_text(encoding="utf-8"))
    assert len(payload["questions"]) == 2
    assert len(payload["history"]) == 1

    target = TrainerService(default_config(), LocalStore(MemoryBackend()))
    summary = target.restore(backup)
    assert (summary.questions_added, summary.history_added) == (2, 1)
    assert target.statistics().statistics.total == 1


def test_statistics_follow_active_user(service) -> None:
    service.questions.add(make_question(answer="B", topic="Tema 2"))
    service.start_test("corto")
    service.answer("B")

    report = service.statistics()
    assert report.user == "Usuario"
    assert report.statistics.percentage == 100
    assert report.per_topic == {"Tema 2": 100}
    assert service.topic_percentage("Tema 2") == 100

    assert service.switch_user("Ana") is True
    assert service.statistics().statistics.total == 0
    names = [summary.name for summary in service.list_users()]
    assert "Ana" in names
    service.delete_user("Usuario")
    assert service.statistics("Usuario").statistics.total == 0


def test_api_key_storage(monkeypatch, service) -> None:
    assert service.api_key() is None
    monkeypatch.setenv("GROQ_API_KEY", "env-key")
    assert service.api_key() == "env-key"

    service.set_api_key("  stored-key ")
    assert service.api_key() == "stored-key"
    assert service.local.load_json("groq-api-key") == "stored-key"

    with pytest.raises(ValidationError):
        service.set_api_key("   ")

    assert service.clear_api_key() is True
    assert service.api_key() == "env-key"


def test_storage_info(tmp_path) -> None:
    layout = ensure_workspace(path=tmp_path / "ws")
    cfg = default_config()
    cfg = replace(
        cfg,
        remote=replace(cfg.remote, enabled=True, document_path=tmp_path / "doc.json"),
    )

    service = build_service(cfg, layout)
    service.questions.extend(
        make_questions(3, topic="Tema 1") + make_questions(1, topic="Tema 2")
    )
    info = service.storage_info()

    assert isinstance(service.local.backend, DirectoryBackend)
    assert info.backend == "directory"
    assert info.location == layout.path_for("data")
    assert (info.questions, info.topics) == (4, 2)
    assert info.current_user == "Usuario"
    assert info.remote == tmp_path / "doc.json"
    assert info.api_key_configured is False
    assert (layout.path_for("data") / "questions.json").exists()


def test_clear_all_requires_confirmation(service) -> None:
    service.questions.extend(make_questions(2))

    with pytest.raises(InvariantError):
        service.clear_all(confirmed=False)

    assert len(service.questions) == 2


def test_clear_all_wipes_questions_and_active_history(service) -> None:
    service.questions.extend(make_questions(3))
    service.switch_user("Ana")
    service.start_test("corto")
    service.answer("B")
    service.finish()
    service.switch_user("Bea")
    service.start_test("corto")
    service.answer("A")

    removed = service.clear_all(confirmed=True)

    assert removed == 3
    assert service.session is None
    assert service.questions.questions == []
    assert service.local.load_json("questions") == []
    assert service.local.load_json("history-Bea") is None
    assert service.statistics().statistics.total == 0
    assert service.statistics("Ana").statistics.total == 1


def test_build_service_loads_remote_collection(tmp_path) -> None:
    layout = ensure_workspace(path=tmp_path / "ws")
    doc = tmp_path / "doc.json"
    JsonDocumentRemote(doc).add_question(
        "¿Compartida?", ["a", "b", "c", "d"], "D", "Tema 3"
    )
    cfg = default_config()
    cfg = replace(cfg, remote=replace(cfg.remote, enabled=True, document_path=doc))

    service = build_service(cfg, layout)

    assert [q.text for q in service.questions] == ["¿Compartida?"]
    assert (layout.path_for("data") / "questions.json").exists()


def test_build_service_keeps_cache_when_remote_fails(tmp_path, caplog) -> None:
    layout = ensure_workspace(path=tmp_path / "ws")
    doc = tmp_path / "doc.json"
    doc.write_text("{not json", encoding="utf-8")
    cfg = default_config()
    cfg = replace(cfg, remote=replace(cfg.remote, enabled=True, document_path=doc))
    cached = build_service(
        replace(cfg, remote=replace(cfg.remote, enabled=False)), layout
    )
    cached.questions.extend(make_questions(2))

    with caplog.at_level("WARNING"):
        service = build_service(cfg, layout)

    assert [q.text for q in service.questions] == ["Pregunta 1", "Pregunta 2"]
    assert "Startup remote refresh failed" in caplog.text
