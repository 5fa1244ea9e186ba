from __future__ import annotations

import logging

from opos_trainer.storage import LocalStore, MemoryBackend


class _BrokenBackend(MemoryBackend):
    def save(self, key, data):
        raise OSError("disk full")

    def load(self, key):
        raise OSError("unreadable")

    def keys(self):
        raise OSError("no listing")


def test_json_round_trip_and_prefix_listing(memory_store) -> None:
    memory_store.save_json("history-Ana", [{"was_correct": True}])
    memory_store.save_json("questions", [])

    assert memory_store.load_json("history-Ana") == [{"was_correct": True}]
    assert memory_store.keys(prefix="history-") == ["history-Ana"]
    assert memory_store.load_json("missing", default=[]) == []


def test_unicode_is_stored_as_utf8() -> None:
    backend = MemoryBackend()
    store = LocalStore(backend)

    store.save_json("current-user", "José")

    assert "José".encode("utf-8") in backend.load("current-user")


def test_corrupt_value_falls_back_to_default(caplog) -> None:
    store = LocalStore(MemoryBackend({"questions": b"{not json"}))

    with caplog.at_level(logging.WARNING, logger="opos_trainer"):
        assert store.load_json("questions", default=[]) == []

    assert "Stored value is corrupt" in caplog.text


def test_failures_are_logged_not_raised(caplog) -> None:
    store = LocalStore(_BrokenBackend())

    with caplog.at_level(logging.ERROR, logger="opos_trainer"):
        assert store.save_json("questions", []) is False
        assert store.load_json("questions", default="fallback") == "fallback"
        assert store.keys() == []

    messages = [record.getMessage() for record in caplog.records]
    assert "Failed to persist key" in messages
    assert "Failed to read key" in messages
    assert "Failed to list keys" in messages


def test_unserializable_value_is_rejected() -> None:
    store = LocalStore(MemoryBackend())

    assert store.save_json("questions", {object()}) is False
    assert store.load_json("questions") is None
