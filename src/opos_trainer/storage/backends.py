"""Byte-level storage strategies selected once at startup."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, Protocol
from urllib.parse import quote, unquote

__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "DirectoryBackend",
    "build_backend",
]

_SUFFIX = ".json"


class StorageBackend(Protocol):
    """Minimal key/value contract every backend honours."""

    def save(self, key: str, data: bytes) -> None: ...

    def load(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> Iterable[str]: ...


class MemoryBackend:
    """Process-local backend used by tests and throwaway sessions."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._items: dict[str, bytes] = dict(initial or {})

    def save(self, key: str, data: bytes) -> None:
        self._items[key] = bytes(data)

    def load(self, key: str) -> bytes | None:
        return self._items.get(key)

    def delete(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._items)


class DirectoryBackend:
    """One file per key inside ``root``; names are percent-encoded keys.

    Writes go through a temporary file and ``os.replace`` so a crash never
    leaves a half-written document behind.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        return self.root / (quote(key, safe="") + _SUFFIX)

    def save(self, key: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path_for(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            unquote(child.name[: -len(_SUFFIX)])
            for child in self.root.iterdir()
            if child.is_file() and child.name.endswith(_SUFFIX)
        )


def build_backend(kind: str, *, data_dir: Path | None = None) -> StorageBackend:
    """Return the backend named ``kind`` (``directory`` or ``memory``)."""

    normalized = kind.strip().lower()
    if normalized == "memory":
        return MemoryBackend()
    if normalized == "directory":
        if data_dir is None:
            raise ValueError("The directory backend requires a data_dir.")
        return DirectoryBackend(data_dir)
    raise ValueError(f"Unknown storage backend '{kind}'.")
