"""Durable key/value persistence for questions, history and preferences."""

from .backends import (
    DirectoryBackend,
    MemoryBackend,
    StorageBackend,
    build_backend,
)
from .store import LocalStore

__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "DirectoryBackend",
    "build_backend",
    "LocalStore",
]
