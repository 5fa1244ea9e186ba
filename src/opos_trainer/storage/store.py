"""JSON documents on top of a byte backend, with logged (not raised) failures."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from .backends import StorageBackend

__all__ = ["LocalStore"]

LOGGER = logging.getLogger(__name__)


class LocalStore:
    """Read and write JSON values by key.

    Persistence failures are logged and reported through the return value;
    reads of missing or corrupt keys fall back to the caller's default.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend
        self.logger = logger or LOGGER

    def save_json(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False, indent=2)
            self.backend.save(key, payload.encode("utf-8"))
        except (OSError, TypeError, ValueError) as exc:
            self.logger.error(
                "Failed to persist key",
                extra={"key": key, "error": str(exc)},
            )
            return False
        return True

    def load_json(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.backend.load(key)
        except OSError as exc:
            self.logger.error(
                "Failed to read key",
                extra={"key": key, "error": str(exc)},
            )
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.logger.warning(
                "Stored value is corrupt; using default",
                extra={"key": key, "error": str(exc)},
            )
            return default

    def delete(self, key: str) -> bool:
        try:
            return self.backend.delete(key)
        except OSError as exc:
            self.logger.error(
                "Failed to delete key",
                extra={"key": key, "error": str(exc)},
            )
            return False

    def keys(self, prefix: str = "") -> list[str]:
        try:
            found: Iterable[str] = self.backend.keys()
        except OSError as exc:
            self.logger.error("Failed to list keys", extra={"error": str(exc)})
            return []
        return [key for key in found if key.startswith(prefix)]
