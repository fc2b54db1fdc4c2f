"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import Settings


def test_defaults_leave_external_services_unconfigured(monkeypatch) -> None:
    """Missing credentials must not prevent settings from loading."""

    monkeypatch.delenv("TMDB_API_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    settings = Settings(_env_file=None)

    assert settings.tmdb_api_key is None
    assert settings.database_url is None
    assert settings.recent_items_limit == 5
    assert str(settings.tmdb_api_url).startswith("https://api.themoviedb.org/3")


def test_blank_values_are_treated_as_missing() -> None:
    settings = Settings(_env_file=None, TMDB_API_KEY="   ", DATABASE_URL="")

    assert settings.tmdb_api_key is None
    assert settings.database_url is None


def test_environment_values_are_read(monkeypatch) -> None:
    monkeypatch.setenv("TMDB_API_KEY", "abc123")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./tracker.db")
    monkeypatch.setenv("RECENT_ITEMS_LIMIT", "10")

    settings = Settings(_env_file=None)

    assert settings.tmdb_api_key == "abc123"
    assert settings.database_url == "sqlite+aiosqlite:///./tracker.db"
    assert settings.recent_items_limit == 10


def test_recent_items_limit_is_bounded() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, RECENT_ITEMS_LIMIT=0)
