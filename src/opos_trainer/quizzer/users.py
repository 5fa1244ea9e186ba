"""Active-user bookkeeping; users are just names scoping history keys."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..storage import LocalStore
from .errors import ValidationError
from .history import HistoryStore, UserStatistics
from .models import DEFAULT_USER

__all__ = ["CURRENT_USER_KEY", "UserDirectory", "UserSummary"]

CURRENT_USER_KEY = "current-user"

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSummary:
    name: str
    active: bool
    statistics: UserStatistics


class UserDirectory:
    """Tracks the active user and exposes the derived user list."""

    def __init__(
        self,
        local: LocalStore,
        history: HistoryStore,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.local = local
        self.history = history
        self.logger = logger or LOGGER
        stored = self.local.load_json(CURRENT_USER_KEY, default=DEFAULT_USER)
        self._current = stored if isinstance(stored, str) and stored.strip() else DEFAULT_USER

    @property
    def current(self) -> str:
        return self._current

    def switch(self, name: str) -> bool:
        """Make ``name`` active; returns ``False`` when it already was."""

        candidate = (name or "").strip()
        if not candidate:
            raise ValidationError("User name cannot be empty.")
        if candidate == self._current:
            return False
        self._current = candidate
        self.local.save_json(CURRENT_USER_KEY, candidate)
        self.history.ensure_user(candidate)
        self.logger.info("Active user changed", extra={"user": candidate})
        return True

    def delete(self, name: str) -> None:
        self.history.clear(name.strip(), active_user=self._current)

    def list(self) -> list[UserSummary]:
        names = self.history.list_users()
        if self._current not in names:
            names.append(self._current)
        return [
            UserSummary(
                name=name,
                active=name == self._current,
                statistics=self.history.statistics_for(name),
            )
            for name in names
        ]
