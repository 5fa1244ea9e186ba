"""Plain-text question dumps and JSON backups (export and restore)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import ValidationError
from .history import HistoryStore
from .models import LETTERS, HistoryEntry, Question
from .questions import QuestionStore, load_question_records

__all__ = [
    "RestoreSummary",
    "backup_filename",
    "build_backup",
    "render_questions_text",
    "restore_backup",
    "write_text",
]

LOGGER = logging.getLogger(__name__)

TEXT_EXPORT_NAME = "preguntas_compartir.txt"


def render_questions_text(
    questions: Sequence[Question], *, exported_at: Optional[datetime] = None
) -> str:
    """Render every question with topic, lettered options and correct letter."""

    when = exported_at or datetime.now(timezone.utc)
    lines = [
        "# TestApp Pro - Preguntas para Compartir",
        f"# Exportado el: {when.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        f"# Total de preguntas: {len(questions)}",
        "",
    ]
    for number, question in enumerate(questions, start=1):
        lines.append(f"## Pregunta {number}")
        lines.append(f"**Tema:** {question.topic}")
        lines.append(f"**Pregunta:** {question.text}")
        lines.append("**Opciones:**")
        for letter, option in zip(LETTERS, question.options):
            lines.append(f"{letter}) {option}")
        lines.append(f"**Respuesta correcta:** {question.correct_option}")
        lines.extend(["", "---", ""])
    return "\n".join(lines)


def build_backup(
    questions: Sequence[Question],
    history: Sequence[HistoryEntry],
    *,
    exported_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    when = exported_at or datetime.now(timezone.utc)
    return {
        "questions": [question.to_dict() for question in questions],
        "history": [entry.to_dict() for entry in history],
        "exportDate": when.isoformat(),
    }


def backup_filename(when: Optional[datetime] = None) -> str:
    stamp = (when or datetime.now(timezone.utc)).date().isoformat()
    return f"opos-trainer-backup-{stamp}.json"


def write_text(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@dataclass(frozen=True)
class RestoreSummary:
    questions_added: int
    questions_skipped: int
    history_added: int


def restore_backup(
    path: Path,
    *,
    questions: QuestionStore,
    history: HistoryStore,
    user: str,
) -> RestoreSummary:
    """Merge a backup file into the stores.

    Questions already present (same text and topic) are skipped; history
    entries are appended to ``user``'s log. Legacy ``preguntas``/``historial``
    keys are accepted too.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValidationError(f"Backup not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Backup is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError("Backup must contain a JSON object.")

    candidates = load_question_records(
        data.get("questions", data.get("preguntas", []))
    )
    added = questions.absorb(candidates)

    entries: List[HistoryEntry] = []
    raw_history = data.get("history", data.get("historial", []))
    for position, record in enumerate(raw_history if isinstance(raw_history, list) else []):
        try:
            entries.append(HistoryEntry.from_dict(record, user=user))
        except ValidationError as exc:
            LOGGER.warning(
                "Skipping malformed backup history record",
                extra={"position": position, "error": str(exc)},
            )
    history_added = history.extend(user, entries)

    summary = RestoreSummary(
        questions_added=len(added),
        questions_skipped=len(candidates) - len(added),
        history_added=history_added,
    )
    LOGGER.info(
        "Backup restored",
        extra={
            "path": Path(path),
            "questions_added": summary.questions_added,
            "history_added": summary.history_added,
        },
    )
    return summary
