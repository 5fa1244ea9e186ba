"""Remote question collections used as an alternate question backend.

The remote side is reached through :class:`RemoteQuestionSource`. Failures
never propagate: they come back as ``RemoteResult(success=False, ...)`` and
are logged. Nothing is retried; callers can simply repeat the action.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .errors import RemoteError
from .models import Question
from .questions import QuestionStore, load_question_records

__all__ = [
    "RemoteQuestionSource",
    "RemoteResult",
    "JsonDocumentRemote",
    "push_question",
    "refresh_from_remote",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteResult:
    success: bool
    message: str
    count: int = 0


class RemoteQuestionSource(Protocol):
    def add_question(
        self,
        text: str,
        options: Sequence[str],
        correct_letter: str,
        topic: str,
        *,
        id: Optional[str] = None,
    ) -> RemoteResult: ...

    def list_questions(self) -> List[Question]: ...


class JsonDocumentRemote:
    """A question collection kept in one shared JSON document.

    Point ``path`` at a synced or network-mounted folder to share questions
    between machines. The document is a JSON array of question records.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> list:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise RemoteError(f"Remote document unreachable: {exc}") from exc
        try:
            data = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as exc:
            raise RemoteError(f"Remote document is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise RemoteError("Remote document must hold a JSON array.")
        return data

    def add_question(
        self,
        text: str,
        options: Sequence[str],
        correct_letter: str,
        topic: str,
        *,
        id: Optional[str] = None,
    ) -> RemoteResult:
        try:
            question = Question.create(
                text, options, correct_letter, topic, id=id
            )
            records = self._read()
            record = question.to_dict()
            record["created_at"] = datetime.now(timezone.utc).isoformat()
            records.append(record)
            self._write(records)
        except (RemoteError, OSError) as exc:
            LOGGER.error("Remote add failed", extra={"error": str(exc)})
            return RemoteResult(False, "Could not add the question remotely.")
        return RemoteResult(True, "Question added.", count=1)

    def list_questions(self) -> List[Question]:
        return load_question_records(self._read(), logger=LOGGER)

    def _write(self, records: list) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise RemoteError(f"Remote document not writable: {exc}") from exc


def refresh_from_remote(
    store: QuestionStore, remote: RemoteQuestionSource
) -> RemoteResult:
    """Overwrite ``store`` with the remote list when it is non-empty."""

    try:
        fetched = remote.list_questions()
    except Exception as exc:  # any transport failure becomes a result
        LOGGER.error("Remote fetch failed", extra={"error": str(exc)})
        return RemoteResult(False, f"Could not load remote questions: {exc}")
    if not fetched:
        return RemoteResult(True, "Remote collection is empty; kept local questions.")
    store.replace_all(fetched)
    LOGGER.info("Questions refreshed from remote", extra={"count": len(fetched)})
    return RemoteResult(True, f"Loaded {len(fetched)} question(s).", count=len(fetched))


def push_question(
    store: QuestionStore,
    remote: RemoteQuestionSource,
    question: Question,
) -> RemoteResult:
    """Add ``question`` remotely, then reload the store from the remote."""

    try:
        result = remote.add_question(
            question.text,
            list(question.options),
            question.correct_option,
            question.topic,
            id=question.id,
        )
    except Exception as exc:  # any transport failure becomes a result
        LOGGER.error("Remote add failed", extra={"error": str(exc)})
        return RemoteResult(False, f"Could not reach the remote store: {exc}")
    if not result.success:
        return result
    refreshed = refresh_from_remote(store, remote)
    if not refreshed.success:
        return RemoteResult(
            True, f"{result.message} {refreshed.message}", count=result.count
        )
    return result
