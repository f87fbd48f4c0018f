from __future__ import annotations

from pathlib import Path

import pytest

from hueshare.webui_server.settings import _bool_env, _int_env, load_webui_settings

_ENV_KEYS = (
    "WEB_BIND_HOST",
    "WEB_BIND_PORT",
    "WEB_BASE_PATH",
    "HUESHARE_STORE",
    "HUESHARE_DB_PATH",
    "HUESHARE_REST_URL",
    "HUESHARE_REST_KEY",
    "HUESHARE_COMMIT_WORKERS",
    "HUESHARE_TAG_CACHE_TTL",
    "HUESHARE_START_EDITING",
    "HUESHARE_LOG_FILE",
    "HUESHARE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_int_env_clamps_below_minimum(monkeypatch):
    monkeypatch.setenv("HUESHARE_COMMIT_WORKERS", "0")
    assert _int_env("HUESHARE_COMMIT_WORKERS", 4, min_val=1, max_val=32) == 1


def test_int_env_clamps_above_maximum(monkeypatch):
    monkeypatch.setenv("HUESHARE_COMMIT_WORKERS", "99")
    assert _int_env("HUESHARE_COMMIT_WORKERS", 4, min_val=1, max_val=32) == 32


def test_int_env_returns_default_when_unset():
    assert _int_env("WEB_BIND_PORT", 4820, min_val=1, max_val=65535) == 4820


def test_bool_env(monkeypatch):
    assert _bool_env("HUESHARE_START_EDITING", False) is False
    monkeypatch.setenv("HUESHARE_START_EDITING", "off")
    assert _bool_env("HUESHARE_START_EDITING", True) is False
    monkeypatch.setenv("HUESHARE_START_EDITING", "yes")
    assert _bool_env("HUESHARE_START_EDITING", False) is True


def test_defaults():
    settings = load_webui_settings()

    assert settings.bind_port == 4820
    assert settings.base_path == "/hueshare"
    assert settings.store_kind == "sqlite"
    assert settings.db_path.name == "taxonomy.db"
    assert settings.db_path.is_absolute()
    assert settings.commit_workers == 4
    assert settings.tag_cache_ttl == 300
    assert settings.start_editing is False
    assert settings.log_file.name == "hueshare.log"
    assert settings.log_level == "WARNING"


def test_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("WEB_BASE_PATH", "tags/")
    monkeypatch.setenv("HUESHARE_DB_PATH", str(tmp_path / "db.sqlite"))
    monkeypatch.setenv("HUESHARE_STORE", "REST")
    monkeypatch.setenv("HUESHARE_REST_URL", "https://db.example/rest/v1/")
    monkeypatch.setenv("HUESHARE_REST_KEY", "key")

    settings = load_webui_settings()

    assert settings.base_path == "/tags"
    assert settings.db_path == (tmp_path / "db.sqlite").resolve()
    assert settings.store_kind == "rest"
    assert settings.rest_url == "https://db.example/rest/v1"


def test_rest_store_needs_credentials(monkeypatch):
    monkeypatch.setenv("HUESHARE_STORE", "rest")
    monkeypatch.setenv("HUESHARE_REST_URL", "https://db.example")

    with pytest.raises(RuntimeError, match="HUESHARE_REST_KEY"):
        load_webui_settings()


def test_unknown_store_kind(monkeypatch):
    monkeypatch.setenv("HUESHARE_STORE", "mongo")

    with pytest.raises(RuntimeError):
        load_webui_settings()


def test_log_settings(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("HUESHARE_LOG_FILE", str(tmp_path / "logs" / "server.log"))
    monkeypatch.setenv("HUESHARE_LOG_LEVEL", "info")

    settings = load_webui_settings()

    assert settings.log_file == (tmp_path / "logs" / "server.log").resolve()
    assert settings.log_level == "INFO"

    monkeypatch.setenv("HUESHARE_LOG_LEVEL", "chatty")
    with pytest.raises(RuntimeError, match="HUESHARE_LOG_LEVEL"):
        load_webui_settings()
