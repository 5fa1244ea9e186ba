"""Per-user append-only answer log backing statistics and review mode."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from ..storage import LocalStore
from .errors import InvariantError, ValidationError
from .models import HistoryEntry

__all__ = [
    "HISTORY_PREFIX",
    "TOPIC_WINDOW",
    "HistoryStore",
    "UserStatistics",
    "history_key",
    "round_half_up",
    "wrong_answer_counts",
]

HISTORY_PREFIX = "history-"
TOPIC_WINDOW = 100

LOGGER = logging.getLogger(__name__)


def history_key(user: str) -> str:
    return f"{HISTORY_PREFIX}{user}"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for non-negative values (0.5 -> 1)."""

    factor = 10**digits
    return int(value * factor + 0.5) / factor


@dataclass(frozen=True)
class UserStatistics:
    total: int
    correct: int
    percentage: int


def _percentage(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round_half_up(correct / total * 100))


def wrong_answer_counts(entries: Iterable[HistoryEntry]) -> Counter:
    """Count wrong answers per ``(text, topic)`` across ``entries``."""

    counts: Counter = Counter()
    for entry in entries:
        if not entry.was_correct:
            counts[entry.question.key] += 1
    return counts


class HistoryStore:
    """Durable per-user history, one ``history-<user>`` key per user.

    Entries are cached per user after the first read. The user list is
    derived from storage keys and is not an authoritative registry: a user
    exists while at least one ``history-`` key is stored for it, even an
    empty one.
    """

    def __init__(
        self,
        local: LocalStore,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.local = local
        self.logger = logger or LOGGER
        self._cache: dict[str, list[HistoryEntry]] = {}

    def entries_for(self, user: str) -> list[HistoryEntry]:
        return list(self._entries(user))

    def append(self, entry: HistoryEntry) -> None:
        entries = self._entries(entry.user)
        entries.append(entry)
        self._persist(entry.user)

    def extend(self, user: str, entries: Iterable[HistoryEntry]) -> int:
        log = self._entries(user)
        before = len(log)
        log.extend(entries)
        if len(log) != before:
            self._persist(user)
        return len(log) - before

    def ensure_user(self, user: str) -> None:
        if self.local.load_json(history_key(user)) is None:
            self._cache[user] = []
            self._persist(user)

    def statistics_for(self, user: str) -> UserStatistics:
        entries = self._entries(user)
        total = len(entries)
        correct = sum(1 for entry in entries if entry.was_correct)
        return UserStatistics(total, correct, _percentage(correct, total))

    def per_topic_percentage(self, topic: str, user: str) -> int:
        """Accuracy over the latest :data:`TOPIC_WINDOW` answers for ``topic``."""

        recent = [e for e in self._entries(user) if e.question.topic == topic]
        window = recent[-TOPIC_WINDOW:]
        correct = sum(1 for entry in window if entry.was_correct)
        return _percentage(correct, len(window))

    def topic_breakdown(self, user: str) -> dict[str, int]:
        topics = dict.fromkeys(e.question.topic for e in self._entries(user))
        return {
            topic: self.per_topic_percentage(topic, user) for topic in topics
        }

    def wrong_counts(self, user: str) -> Counter:
        return wrong_answer_counts(self._entries(user))

    def clear(self, user: str, *, active_user: str) -> None:
        """Delete every entry for ``user``; the active user is protected."""

        if not user.strip():
            raise ValidationError("User name cannot be empty.")
        if user == active_user:
            raise InvariantError(
                "Cannot delete the active user. Switch to another user first."
            )
        self.local.delete(history_key(user))
        self._cache.pop(user, None)
        self.logger.info("User history cleared", extra={"user": user})

    def wipe(self, user: str) -> None:
        """Drop every entry for ``user`` without the active-user guard."""

        self.local.delete(history_key(user))
        self._cache.pop(user, None)
        self.logger.info("User history wiped", extra={"user": user})

    def list_users(self) -> list[str]:
        return [
            key[len(HISTORY_PREFIX) :]
            for key in self.local.keys(prefix=HISTORY_PREFIX)
        ]

    def _entries(self, user: str) -> list[HistoryEntry]:
        cached = self._cache.get(user)
        if cached is not None:
            return cached
        records = self.local.load_json(history_key(user), default=[])
        entries: list[HistoryEntry] = []
        if isinstance(records, list):
            for position, record in enumerate(records):
                try:
                    entries.append(HistoryEntry.from_dict(record, user=user))
                except ValidationError as exc:
                    self.logger.warning(
                        "Skipping malformed history record",
                        extra={
                            "user": user,
                            "position": position,
                            "error": str(exc),
                        },
                    )
        self._cache[user] = entries
        return entries

    def _persist(self, user: str) -> None:
        self.local.save_json(
            history_key(user),
            [entry.to_dict() for entry in self._cache.get(user, [])],
        )
