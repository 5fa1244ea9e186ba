"""Parse delimited plain text into question drafts.

Accepted block shape (blocks are separated by blank lines)::

    Pregunta: ¿Cuál es la capital de Francia?
    a) Madrid
    *b) París
    c) Londres
    d) Roma

``a:`` works as well as ``a)``; the ``*`` marks the correct option.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from .errors import ValidationError
from .models import DEFAULT_TOPIC, LETTERS, Question, QuestionDraft, new_question_id

__all__ = [
    "ImportBatch",
    "parse_questions",
    "iter_import_files",
    "read_import_file",
]

LOGGER = logging.getLogger(__name__)

_BLOCK_SPLIT = re.compile(r"\n\s*\n")
_OPTION_LINE = re.compile(r"^\*?[a-d][):]", re.IGNORECASE)
_QUESTION_PREFIX = re.compile(r"^pregunta:\s*", re.IGNORECASE)


def _parse_block(lines: List[str]) -> tuple[Optional[QuestionDraft], str]:
    question_text = ""
    options: List[str] = []
    marked: List[str] = []
    for position, line in enumerate(lines):
        if _QUESTION_PREFIX.match(line):
            question_text = _QUESTION_PREFIX.sub("", line, count=1).strip()
        elif position == 0 and not _OPTION_LINE.match(line):
            question_text = line
        elif _OPTION_LINE.match(line):
            is_correct = line.startswith("*")
            letter = line[1 if is_correct else 0].upper()
            # Text follows the "x)" / "x:" delimiter; position decides A-D.
            options.append(line[3 if is_correct else 2 :].strip())
            if is_correct:
                marked.append(letter)

    if not question_text:
        return None, "missing question line"
    if len(options) != len(LETTERS):
        return None, f"expected {len(LETTERS)} options, found {len(options)}"
    if len(marked) != 1:
        return None, f"expected one correct option, found {len(marked)}"
    return QuestionDraft(question_text, options, marked[0]), ""


def parse_questions(
    content: str, *, logger: Optional[logging.Logger] = None
) -> List[QuestionDraft]:
    """Return drafts for every well-formed block in ``content``.

    Malformed blocks are logged and skipped; they never abort the batch.
    """

    log = logger or LOGGER
    normalized = content.replace("\r\n", "\n").replace("\r", "\n")
    blocks = [b for b in _BLOCK_SPLIT.split(normalized) if b.strip()]
    drafts: List[QuestionDraft] = []
    for index, block in enumerate(blocks, start=1):
        lines = [ln.strip() for ln in block.strip().split("\n") if ln.strip()]
        draft, reason = _parse_block(lines)
        if draft is None:
            log.debug(
                "Dropped import block",
                extra={"block": index, "reason": reason},
            )
            continue
        drafts.append(draft)
    log.info(
        "Parsed import text",
        extra={"blocks": len(blocks), "drafts": len(drafts)},
    )
    return drafts


@dataclass
class ImportBatch:
    """Drafts waiting for topic review before they become questions."""

    drafts: List[QuestionDraft]
    default_topic: str = DEFAULT_TOPIC
    sources: List[Path] = field(default_factory=list)

    def __post_init__(self) -> None:
        for draft in self.drafts:
            if not draft.topic:
                draft.topic = self.default_topic

    @classmethod
    def from_text(
        cls, content: str, *, default_topic: str = DEFAULT_TOPIC
    ) -> "ImportBatch":
        drafts = parse_questions(content)
        if not drafts:
            raise ValidationError("No valid questions found.")
        return cls(drafts, default_topic=default_topic)

    @classmethod
    def from_files(
        cls, paths: Sequence[Path], *, default_topic: str = DEFAULT_TOPIC
    ) -> "ImportBatch":
        drafts: List[QuestionDraft] = []
        for path in paths:
            drafts.extend(parse_questions(read_import_file(path)))
        if not drafts:
            raise ValidationError("No valid questions found.")
        return cls(drafts, default_topic=default_topic, sources=list(paths))

    def __len__(self) -> int:
        return len(self.drafts)

    def assign_topic(self, index: int, topic: str) -> None:
        if not 0 <= index < len(self.drafts):
            raise ValidationError(f"No draft at position {index + 1}.")
        if not topic.strip():
            raise ValidationError("Topic cannot be empty.")
        self.drafts[index].topic = topic.strip()

    def apply_topic_to_all(self, topic: str) -> None:
        if not topic.strip():
            raise ValidationError("Topic cannot be empty.")
        self.default_topic = topic.strip()
        for draft in self.drafts:
            draft.topic = self.default_topic

    def confirm(
        self, id_factory: Callable[[], str] = new_question_id
    ) -> List[Question]:
        return [draft.to_question(id=id_factory()) for draft in self.drafts]


def iter_import_files(
    paths: Sequence[Path],
    extensions: Sequence[str] = ("txt",),
    level_limit: int = 0,
) -> Iterator[Path]:
    """Yield matching files from ``paths``, preserving input order.

    Directories are walked in name order; ``level_limit`` caps the depth
    (``1`` means direct children only, ``0`` means unlimited).
    """
    if level_limit < 0:
        raise ValueError("level_limit must be >= 0")
    exts = {e.lower().lstrip(".") for e in extensions if e.strip()}
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            yield path
            continue
        if not path.exists():
            raise FileNotFoundError(f"Input not found: {path}")
        for child in sorted(path.rglob("*"), key=lambda p: str(p).lower()):
            if not child.is_file() or child.suffix.lower().lstrip(".") not in exts:
                continue
            if level_limit and len(child.relative_to(path).parts) > level_limit:
                continue
            yield child


def read_import_file(path: Path) -> str:
    """Read a text file as UTF-8 with replacement for decode errors."""
    with Path(path).open("r", encoding="utf-8", errors="replace") as fh:
        return fh.read()
