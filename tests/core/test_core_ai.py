from __future__ import annotations

import pytest

from opos_trainer.core import ai


class _RecordingOpenAI:
    last = None

    def __init__(self, **kwargs):
        self.init_kwargs = kwargs
        _RecordingOpenAI.last = self


def test_resolve_prefers_stored_key(monkeypatch):
    monkeypatch.setenv(ai.API_KEY_ENV, "env-key")

    assert ai.resolve_api_key("  stored ") == "stored"
    assert ai.resolve_api_key(None) == "env-key"
    assert ai.resolve_api_key("   ") == "env-key"


def test_resolve_returns_none_without_key():
    assert ai.resolve_api_key() is None


def test_load_client_requires_openai_dependency(monkeypatch):
    monkeypatch.setattr(ai, "OpenAI", None)

    with pytest.raises(RuntimeError) as exc:
        ai.load_client("key")

    assert "openai" in str(exc.value).lower()


def test_load_client_requires_api_key(monkeypatch):
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)

    with pytest.raises(RuntimeError) as exc:
        ai.load_client()

    assert ai.API_KEY_ENV in str(exc.value)


def test_load_client_passes_key_and_base_url(monkeypatch):
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)

    client = ai.load_client("gsk_1", base_url="https://api.groq.com/openai/v1")

    assert client is _RecordingOpenAI.last
    assert client.init_kwargs == {
        "api_key": "gsk_1",
        "base_url": "https://api.groq.com/openai/v1",
    }


def test_load_client_uses_environment(monkeypatch):
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)
    monkeypatch.setenv(ai.API_KEY_ENV, "from-env")

    client = ai.load_client()

    assert client.init_kwargs == {"api_key": "from-env"}
