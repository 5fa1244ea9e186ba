from __future__ import annotations

import pytest

from opos_trainer.quizzer.errors import InvariantError, ValidationError
from opos_trainer.quizzer.history import HistoryStore
from opos_trainer.quizzer.models import DEFAULT_USER
from opos_trainer.quizzer.users import CURRENT_USER_KEY, UserDirectory


def _directory(memory_store) -> UserDirectory:
    return UserDirectory(memory_store, HistoryStore(memory_store))


def test_default_user_when_nothing_stored(memory_store) -> None:
    assert _directory(memory_store).current == DEFAULT_USER


def test_switch_trims_persists_and_registers(memory_store) -> None:
    users = _directory(memory_store)

    assert users.switch("  Ana ") is True
    assert users.current == "Ana"
    assert memory_store.load_json(CURRENT_USER_KEY) == "Ana"
    assert "Ana" in users.history.list_users()
    assert _directory(memory_store).current == "Ana"


def test_switch_to_active_user_reports_no_change(memory_store) -> None:
    users = _directory(memory_store)
    users.switch("Ana")

    assert users.switch("Ana") is False


def test_switch_rejects_empty_name(memory_store) -> None:
    users = _directory(memory_store)

    with pytest.raises(ValidationError):
        users.switch("   ")
    assert users.current == DEFAULT_USER


def test_delete_active_user_is_refused(memory_store) -> None:
    users = _directory(memory_store)
    users.switch("Ana")

    with pytest.raises(InvariantError):
        users.delete("Ana")


def test_delete_other_user(memory_store) -> None:
    users = _directory(memory_store)
    users.switch("Bea")
    users.switch("Ana")

    users.delete("Bea")

    assert [summary.name for summary in users.list()] == ["Ana"]


def test_list_includes_active_user_with_statistics(memory_store) -> None:
    users = _directory(memory_store)

    summaries = users.list()

    assert [(s.name, s.active, s.statistics.total) for s in summaries] == [
        (DEFAULT_USER, True, 0)
    ]
