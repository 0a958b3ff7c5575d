"""Configuration management for AgentDeck MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DB_FILENAME = "sessions.db"


class AgentDeckSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    config_dir: Path = Field(
        default=Path("~/.config/agentdeck"), validation_alias="AGENTDECK_CONFIG_DIR"
    )
    database_path: Path | None = Field(default=None, validation_alias="AGENTDECK_DB_PATH")
    profile_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="AGENTDECK_PROFILE_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="AGENTDECK_LOG_LEVEL")
    discovery_retry_limit: int = Field(default=8, validation_alias="AGENTDECK_DISCOVERY_RETRY_LIMIT")
    discovery_retry_delay: float = Field(
        default=1.5, validation_alias="AGENTDECK_DISCOVERY_RETRY_DELAY"
    )
    discovery_grace_seconds: int = Field(
        default=120, validation_alias="AGENTDECK_DISCOVERY_GRACE_SECONDS"
    )
    resume_on_start: bool = Field(default=False, validation_alias="AGENTDECK_RESUME_ON_START")
    terminal_cols: int = Field(default=120, validation_alias="AGENTDECK_TERMINAL_COLS")
    terminal_rows: int = Field(default=40, validation_alias="AGENTDECK_TERMINAL_ROWS")
    chroma_persist_path: Path | None = Field(default=None, validation_alias="CHROMA_PERSIST_PATH")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "AGENTDECK_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("profile_paths", mode="before")
    @classmethod
    def _parse_profile_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("AGENTDECK_PROFILE_PATHS must be a list of paths or a path-separated string")

    @field_validator("discovery_retry_limit", "terminal_cols", "terminal_rows")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value

    @field_validator("discovery_retry_delay", "discovery_grace_seconds")
    @classmethod
    def _validate_non_negative(cls, value):
        if value < 0:
            raise ValueError("value must be >= 0")
        return value

    def resolved_database_path(self) -> Path:
        """Return the session database location, defaulting into the config dir."""

        if self.database_path is not None:
            return self.database_path.expanduser()
        return self.config_dir.expanduser() / DB_FILENAME


@lru_cache(maxsize=1)
def get_settings() -> AgentDeckSettings:
    """Return cached settings instance."""

    settings = AgentDeckSettings()
    settings.config_dir = settings.config_dir.expanduser().resolve()
    settings.profile_paths = tuple(path.expanduser().resolve() for path in settings.profile_paths)
    if settings.chroma_persist_path is not None:
        settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    return settings


__all__ = ["AgentDeckSettings", "DB_FILENAME", "get_settings"]
