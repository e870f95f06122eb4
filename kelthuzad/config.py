"""Centralized configuration: ambient settings from the environment and the
immutable watch configuration built from the command line."""

from __future__ import annotations

import shlex
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DELAY = 5


class Settings(BaseSettings):
    """Supervisor-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_prefix="KELTHUZAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    env: str = "development"
    log_level: str = "INFO"

    # ── Line sources ─────────────────────────────────────────────────
    poll_interval: float = Field(default=0.25, gt=0)    # file tail polling period (s)
    read_limit: int = Field(default=1024 * 1024, gt=0)  # max bytes per stdout line

    # ── Shutdown ─────────────────────────────────────────────────────
    shutdown_grace: float = Field(default=5.0, ge=0)    # wait for "is done!" after SIGTERM


class LineSourceMode(StrEnum):
    """Where the supervisor reads lines from."""

    FILE = "file"
    STDOUT = "stdout"


class WatchConfig(BaseModel):
    """What to run, what to watch and how to react. Never mutated."""

    model_config = ConfigDict(frozen=True)

    command: str
    log_path: Optional[str] = None
    regex: str
    verbose: bool = False
    delay: float = Field(default=DEFAULT_DELAY, ge=0)

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        try:
            argv = shlex.split(v)
        except ValueError as exc:
            raise ValueError(f"cannot parse command {v!r}: {exc}") from exc
        if not argv:
            raise ValueError("command must not be empty")
        return v

    @field_validator("regex")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        if not v:
            raise ValueError("regex must not be empty")
        return v

    @field_validator("log_path", mode="before")
    @classmethod
    def normalize_log_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return str(v) or None

    @property
    def mode(self) -> LineSourceMode:
        """Exactly one mode is active: tail the log file if given, else stdout."""
        return LineSourceMode.FILE if self.log_path else LineSourceMode.STDOUT

    @property
    def argv(self) -> list[str]:
        return shlex.split(self.command)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
