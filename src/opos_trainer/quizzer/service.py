"""Service facade behind every quiz command.

``TrainerService`` owns the stores, the user directory, the session engine
and the optional remote collection. Each public method is one shell command,
so the Rich loop, the Textual app and the argparse handlers stay thin.
"""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence

from ..core.ai import resolve_api_key
from ..core.workspace import WorkspaceLayout
from ..storage import LocalStore, build_backend
from .config import QuizConfig
from .engine import SessionEngine, SessionResult, TestSession
from .errors import InvariantError, ValidationError
from .explain import ExplanationResult, request_explanation
from .export import (
    TEXT_EXPORT_NAME,
    RestoreSummary,
    backup_filename,
    build_backup,
    render_questions_text,
    restore_backup,
    write_text,
)
from .history import HistoryStore, UserStatistics
from .importer import ImportBatch, iter_import_files
from .models import DEFAULT_TOPIC, Question
from .questions import QuestionStore
from .remote import (
    JsonDocumentRemote,
    RemoteQuestionSource,
    RemoteResult,
    push_question,
    refresh_from_remote,
)
from .users import UserDirectory, UserSummary

__all__ = [
    "AnswerOutcome",
    "ImportReport",
    "StatisticsReport",
    "StorageInfo",
    "TrainerService",
    "build_service",
    "mask_key",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerOutcome:
    accepted: bool
    is_correct: bool
    explanation: Optional[ExplanationResult] = None


@dataclass(frozen=True)
class ImportReport:
    parsed: int
    added: int
    skipped: int
    questions: List[Question] = field(default_factory=list)


@dataclass(frozen=True)
class StatisticsReport:
    user: str
    statistics: UserStatistics
    per_topic: dict[str, int]


@dataclass(frozen=True)
class StorageInfo:
    backend: str
    location: Optional[Path]
    questions: int
    topics: int
    current_user: str
    users: int
    remote: Optional[Path]
    api_key_configured: bool


def mask_key(key: Optional[str]) -> str:
    if not key:
        return "(not set)"
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


class TrainerService:
    """Plain callables for the quiz shell, one per command."""

    def __init__(
        self,
        config: QuizConfig,
        local: LocalStore,
        *,
        layout: Optional[WorkspaceLayout] = None,
        remote: Optional[RemoteQuestionSource] = None,
        client: Any = None,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.local = local
        self.layout = layout
        self.remote = remote
        self.client = client
        self.logger = logger or LOGGER
        self.questions = QuestionStore(local)
        self.history = HistoryStore(local)
        self.users = UserDirectory(local, self.history)
        self.engine = SessionEngine(
            self.questions,
            self.history,
            lambda: self.users.current,
            rng=rng,
        )

    # -- sessions -------------------------------------------------------

    @property
    def session(self) -> Optional[TestSession]:
        return self.engine.session

    def start_test(
        self, mode: str, topic: Optional[str] = None
    ) -> TestSession:
        return self.engine.start(mode, topic)

    def answer(self, letter: str) -> AnswerOutcome:
        """Answer the current question; wrong answers may auto-explain."""

        accepted = self.engine.answer(letter)
        session = self.engine.session
        assert session is not None
        index = session.current_index
        is_correct = session.is_correct(index)
        explanation = None
        if (
            accepted
            and not is_correct
            and self.config.ai.auto_explain
            and (self.client is not None or self.api_key())
        ):
            explanation = self.explain(index)
        return AnswerOutcome(accepted, is_correct, explanation)

    def navigate(self, direction: int) -> int:
        return self.engine.advance(direction)

    def jump(self, index: int) -> int:
        return self.engine.jump(index)

    def finish(self) -> SessionResult:
        return self.engine.finish()

    def exit_test(self) -> None:
        self.engine.exit()

    def explain(self, index: Optional[int] = None) -> ExplanationResult:
        """Fetch an explanation for an answered question of the live test."""

        ticket = self.engine.ticket_for(index)
        session = self.engine.session
        assert session is not None
        selected = session.selected_for(ticket.index)
        if selected is None:
            raise InvariantError("Answer the question before asking why.")
        cached = session.explanations.get(ticket.index)
        if cached:
            return ExplanationResult(text=cached)
        result = request_explanation(
            session.questions[ticket.index],
            selected,
            self.api_key(),
            settings=self.config.explanation_settings(),
            client=self.client,
            logger=self.logger,
        )
        if result.ok:
            self.engine.attach_explanation(ticket, result.text)
        return result

    # -- question collection ---------------------------------------------

    def add_question(
        self,
        text: str,
        options: Sequence[str],
        answer: str,
        topic: str,
    ) -> tuple[Question, Optional[RemoteResult]]:
        question = Question.create(text, options, answer, topic)
        if self.remote is not None:
            result = push_question(self.questions, self.remote, question)
            if result.success:
                return self._stored_copy(question), result
            self.logger.warning(
                "Remote add failed; keeping question locally",
                extra={"question_id": question.id},
            )
            self.questions.add(question)
            return question, result
        self.questions.add(question)
        return question, None

    def remove_question(self, index: int, *, confirmed: bool) -> Question:
        return self.questions.remove(index, confirmed=confirmed)

    def clear_all(self, *, confirmed: bool) -> int:
        """Delete every question and the active user's history.

        Returns the number of questions removed. Irreversible, so callers
        must confirm first.
        """

        if not confirmed:
            raise InvariantError(
                "Deleting all data is irreversible; confirmation required."
            )
        removed = len(self.questions)
        self.engine.exit()
        self.questions.replace_all([])
        self.history.wipe(self.users.current)
        self.logger.info(
            "All data cleared",
            extra={"questions": removed, "user": self.users.current},
        )
        return removed

    def _stored_copy(self, question: Question) -> Question:
        for stored in self.questions:
            if stored.id == question.id:
                return stored
        for stored in self.questions:
            if stored.key == question.key:
                return stored
        return question

    def prepare_import(
        self,
        paths: Sequence[Path],
        *,
        topic: Optional[str] = None,
        extensions: Sequence[str] = ("txt",),
        level_limit: int = 0,
    ) -> ImportBatch:
        try:
            files = list(
                iter_import_files(
                    paths, extensions=extensions, level_limit=level_limit
                )
            )
        except FileNotFoundError as exc:
            raise ValidationError(str(exc)) from exc
        if not files:
            raise ValidationError("No matching import files found.")
        return ImportBatch.from_files(files, default_topic=topic or DEFAULT_TOPIC)

    def commit_import(
        self, batch: ImportBatch, *, skip_duplicates: bool = False
    ) -> ImportReport:
        confirmed = batch.confirm()
        if skip_duplicates:
            added = self.questions.absorb(confirmed)
        else:
            self.questions.extend(confirmed)
            added = confirmed
        report = ImportReport(
            parsed=len(confirmed),
            added=len(added),
            skipped=len(confirmed) - len(added),
            questions=list(added),
        )
        self.logger.info(
            "Questions imported",
            extra={"added": report.added, "skipped": report.skipped},
        )
        return report

    def recover_questions(self) -> List[Question]:
        return self.questions.recover_from_cache()

    def sync_remote(self) -> RemoteResult:
        if self.remote is None:
            return RemoteResult(False, "Remote collection is not configured.")
        return refresh_from_remote(self.questions, self.remote)

    # -- export / backup --------------------------------------------------

    def _export_target(self, path: Optional[Path], default_name: str) -> Path:
        if path is not None:
            return Path(path)
        if self.layout is None:
            return Path.cwd() / default_name
        return self.layout.path_for("exports") / default_name

    def export_text(self, path: Optional[Path] = None) -> Path:
        if not len(self.questions):
            raise InvariantError("There are no questions to export.")
        target = self._export_target(path, TEXT_EXPORT_NAME)
        write_text(target, render_questions_text(self.questions.questions))
        self.logger.info("Questions exported", extra={"path": target})
        return target

    def export_backup(self, path: Optional[Path] = None) -> Path:
        target = self._export_target(path, backup_filename())
        payload = build_backup(
            self.questions.questions,
            self.history.entries_for(self.users.current),
        )
        write_text(target, json.dumps(payload, ensure_ascii=False, indent=2))
        self.logger.info("Backup written", extra={"path": target})
        return target

    def restore(self, path: Path) -> RestoreSummary:
        return restore_backup(
            path,
            questions=self.questions,
            history=self.history,
            user=self.users.current,
        )

    # -- users and statistics ------------------------------------------

    def statistics(self, user: Optional[str] = None) -> StatisticsReport:
        name = (user or self.users.current).strip()
        return StatisticsReport(
            user=name,
            statistics=self.history.statistics_for(name),
            per_topic=self.history.topic_breakdown(name),
        )

    def topic_percentage(self, topic: str, user: Optional[str] = None) -> int:
        return self.history.per_topic_percentage(
            topic, user or self.users.current
        )

    def switch_user(self, name: str) -> bool:
        return self.users.switch(name)

    def delete_user(self, name: str) -> None:
        self.users.delete(name)

    def list_users(self) -> List[UserSummary]:
        return self.users.list()

    # -- API key --------------------------------------------------------

    def api_key(self) -> Optional[str]:
        stored = self.local.load_json(self.config.ai.api_key_name)
        return resolve_api_key(stored if isinstance(stored, str) else None)

    def set_api_key(self, key: str) -> bool:
        value = (key or "").strip()
        if not value:
            raise ValidationError("API key cannot be empty.")
        return self.local.save_json(self.config.ai.api_key_name, value)

    def clear_api_key(self) -> bool:
        return self.local.delete(self.config.ai.api_key_name)

    # -- info -----------------------------------------------------------

    def storage_info(self) -> StorageInfo:
        location = None
        if self.config.storage.backend == "directory" and self.layout is not None:
            location = self.layout.path_for("data")
        remote_path = None
        if isinstance(self.remote, JsonDocumentRemote):
            remote_path = self.remote.path
        return StorageInfo(
            backend=self.config.storage.backend,
            location=location,
            questions=len(self.questions),
            topics=len(self.questions.topics()),
            current_user=self.users.current,
            users=len(self.users.list()),
            remote=remote_path,
            api_key_configured=bool(self.api_key()),
        )


def build_service(
    config: QuizConfig,
    layout: WorkspaceLayout,
    *,
    client: Any = None,
    rng: Optional[random.Random] = None,
    remote: Optional[RemoteQuestionSource] = None,
) -> TrainerService:
    """Wire the storage strategy, remote and stores from ``config``.

    With a remote configured the question store is refreshed from it before
    returning; a failed refresh is logged and the cached questions stay.
    """

    backend = build_backend(
        config.storage.backend, data_dir=layout.path_for("data")
    )
    if remote is None and config.remote.enabled and config.remote.document_path:
        remote = JsonDocumentRemote(config.remote.document_path)
    service = TrainerService(
        config,
        LocalStore(backend),
        layout=layout,
        remote=remote,
        client=client,
        rng=rng,
    )
    if service.remote is not None:
        result = service.sync_remote()
        if not result.success:
            LOGGER.warning(
                "Startup remote refresh failed; using cached questions",
                extra={"error": result.message},
            )
    return service

