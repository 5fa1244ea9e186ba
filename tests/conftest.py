from __future__ import annotations

import random
import sys
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
for extra in (TESTS_DIR, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import OpenAIStub  # noqa: E402
from opos_trainer.core.logging import reset_logger  # noqa: E402
from opos_trainer.quizzer.config import default_config  # noqa: E402
from opos_trainer.quizzer.service import TrainerService  # noqa: E402
from opos_trainer.storage import LocalStore, MemoryBackend  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    """Keep real keys, configs and workspaces out of every test."""

    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("OPOS_TRAINER_CONFIG", raising=False)
    monkeypatch.setenv("OPOS_TRAINER_DATA_HOME", str(tmp_path / "ws"))
    monkeypatch.setattr("opos_trainer.core.ai.load_dotenv", lambda *a, **k: False)
    yield
    reset_logger()


@pytest.fixture
def memory_store() -> LocalStore:
    return LocalStore(MemoryBackend())


@pytest.fixture
def openai_stub() -> OpenAIStub:
    return OpenAIStub()


@pytest.fixture
def service(memory_store: LocalStore) -> TrainerService:
    """A service over in-memory storage with a seeded shuffle."""

    return TrainerService(default_config(), memory_store, rng=random.Random(7))
