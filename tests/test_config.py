"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

from stockroom.config import get_settings


def test_environment_overrides_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("STOCKROOM_UPLOAD_CONCURRENCY", "8")
    monkeypatch.setenv("STOCKROOM_UPLOAD_RETRY_BACKOFF", "1.5")
    monkeypatch.setenv("STOCKROOM_DEFAULT_PAGE_HEIGHT", "842")
    monkeypatch.setenv("STOCKROOM_LOG_FORMAT", "json")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.database_path == Path(tmp_path / "test_stockroom.db")
    assert settings.upload_concurrency == 8
    assert settings.upload_retry_backoff == 1.5
    assert settings.default_page_height == 842.0
    assert settings.log_format == "json"


def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("STOCKROOM_UPLOAD_CONCURRENCY", "many")
    monkeypatch.setenv("STOCKROOM_UPLOAD_RETRY_ATTEMPTS", "")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.upload_concurrency == 4
    assert settings.upload_retry_attempts == 3


def test_secrets_lists_configured_tokens(monkeypatch):
    monkeypatch.setenv("STOCKROOM_ASSET_API_TOKEN", "api-secret")
    monkeypatch.setenv("STOCKROOM_NOTIFY_WEBHOOK_TOKEN", "hook-secret")
    get_settings.cache_clear()

    assert get_settings().secrets() == ["api-secret", "hook-secret"]
