from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from agentdeck_mcp.config import DB_FILENAME, AgentDeckSettings, get_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path: Path):
    for key in list(os.environ):
        if key.startswith("AGENTDECK_") or key == "CHROMA_PERSIST_PATH":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = AgentDeckSettings()

    assert settings.log_level == "INFO"
    assert settings.profile_paths == ()
    assert settings.discovery_retry_limit == 8
    assert settings.discovery_grace_seconds == 120
    assert settings.resume_on_start is False
    assert settings.chroma_persist_path is None
    assert settings.resolved_database_path() == Path("~/.config/agentdeck").expanduser() / DB_FILENAME


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    first = tmp_path / "profiles-a"
    second = tmp_path / "profiles-b"
    monkeypatch.setenv("AGENTDECK_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("AGENTDECK_PROFILE_PATHS", f"{first}{os.pathsep} {second} ")
    monkeypatch.setenv("AGENTDECK_LOG_LEVEL", " debug ")
    monkeypatch.setenv("AGENTDECK_RESUME_ON_START", "true")
    monkeypatch.setenv("AGENTDECK_DISCOVERY_RETRY_DELAY", "0")

    settings = AgentDeckSettings()

    assert settings.profile_paths == (first, second)
    assert settings.log_level == "DEBUG"
    assert settings.resume_on_start is True
    assert settings.discovery_retry_delay == 0
    assert settings.resolved_database_path() == tmp_path / "config" / DB_FILENAME


def test_explicit_database_path_wins(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENTDECK_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("AGENTDECK_DB_PATH", str(tmp_path / "elsewhere.db"))

    assert AgentDeckSettings().resolved_database_path() == tmp_path / "elsewhere.db"


@pytest.mark.parametrize(
    ("variable", "value"),
    [
        ("AGENTDECK_LOG_LEVEL", "verbose"),
        ("AGENTDECK_DISCOVERY_RETRY_LIMIT", "0"),
        ("AGENTDECK_TERMINAL_COLS", "-1"),
        ("AGENTDECK_DISCOVERY_GRACE_SECONDS", "-5"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, variable: str, value: str) -> None:
    monkeypatch.setenv(variable, value)

    with pytest.raises(ValidationError):
        AgentDeckSettings()


def test_get_settings_resolves_and_caches(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENTDECK_CONFIG_DIR", str(tmp_path / "cfg" / ".." / "cfg"))
    monkeypatch.setenv("CHROMA_PERSIST_PATH", str(tmp_path / "chroma"))

    settings = get_settings()

    assert settings.config_dir == (tmp_path / "cfg").resolve()
    assert settings.chroma_persist_path == (tmp_path / "chroma").resolve()
    assert get_settings() is settings
