from __future__ import annotations

from pathlib import Path

from docchat.config import get_settings, reset_settings_cache


def test_settings_read_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "500")
    monkeypatch.setenv("RETRIEVAL_THRESHOLD", "0.55")
    monkeypatch.setenv("LLM_PROVIDER", "  OpenAI ")
    reset_settings_cache()

    settings = get_settings()

    assert settings.chunk_size == 500
    assert settings.retrieval_threshold == 0.55
    assert settings.llm_provider == "openai"
    assert settings.data_dir == Path(tmp_path / "data")
    assert get_settings() is settings


def test_invalid_numbers_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CHUNK_OVERLAP", "lots")
    monkeypatch.setenv("LLM_TEMPERATURE", "warm")
    monkeypatch.setenv("LLM_PROVIDER", "   ")
    reset_settings_cache()

    settings = get_settings()

    assert settings.chunk_overlap == 200
    assert settings.llm_temperature == 0.7
    assert settings.llm_provider is None
