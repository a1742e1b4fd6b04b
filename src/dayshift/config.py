"""Configuration management for dayshift."""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_MSG_PATTERN = r"^(feat|fix|refactor|docs|test|chore)(\([^)]+\))?:\s"
DEFAULT_WATCH_IGNORE = ("node_modules", "logs", ".worktrees")


def _split_paths(value) -> tuple[str, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if str(item).strip())
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(os.pathsep) if part.strip())
    raise TypeError("expected a list of paths or a path-separated string")


class DayshiftSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file.

    The instance is frozen: it is built once at startup and handed to every
    component constructor.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # branch / time
    static_branch: str | None = Field(default=None, validation_alias="AC_BRANCH")
    daily_prefix: str = Field(
        default="dev_sdd_",
        validation_alias=AliasChoices("AC_DAILY_PREFIX", "AC_BRANCH_PREFIX"),
    )
    timezone: str = Field(default="Asia/Dubai", validation_alias="AC_TZ")
    date_style: Literal["dash", "compact"] = Field(default="dash", validation_alias="AC_DATE_STYLE")
    trunk: str = Field(default="main", validation_alias="AC_TRUNK")

    # push
    push: bool = Field(default=True, validation_alias="AC_PUSH")
    push_force_fallback: bool = Field(default=False, validation_alias="AC_PUSH_FORCE_FALLBACK")

    # message gating
    require_msg: bool = Field(default=True, validation_alias="AC_REQUIRE_MSG")
    require_msg_after_change: bool = Field(
        default=False, validation_alias="AC_REQUIRE_MSG_AFTER_CHANGE"
    )
    msg_min_bytes: int = Field(default=20, validation_alias="AC_MSG_MIN_BYTES")
    msg_pattern: str = Field(default=DEFAULT_MSG_PATTERN, validation_alias="AC_MSG_PATTERN")
    msg_file: str | None = Field(default=None, validation_alias="AC_MSG_FILE")
    msg_fallbacks: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), validation_alias="AC_MSG_FALLBACKS"
    )

    # triggering
    trigger_on_msg: bool = Field(default=True, validation_alias="AC_TRIGGER_ON_MSG")
    msg_debounce_ms: int = Field(default=3000, validation_alias="AC_MSG_DEBOUNCE_MS")
    quiet_ms: int = Field(default=0, validation_alias="AC_QUIET_MS")
    use_polling: bool = Field(default=False, validation_alias="AC_USE_POLLING")
    watch_ignore: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_WATCH_IGNORE, validation_alias="AC_WATCH_IGNORE"
    )

    # lifecycle
    clear_msg_when: Literal["push", "commit", "never"] = Field(
        default="push", validation_alias="AC_CLEAR_MSG_WHEN"
    )
    commit_on_start: bool = Field(default=True, validation_alias="AC_COMMIT_ON_START")
    confirm_on_start: bool = Field(default=True, validation_alias="AC_CONFIRM_ON_START")
    rollover_prompt: bool = Field(default=True, validation_alias="AC_ROLLOVER_PROMPT")
    force_rollover: bool = Field(default=False, validation_alias="AC_FORCE_ROLLOVER")

    # versioning
    version_prefix: str = Field(default="v0.", validation_alias="AC_VERSION_PREFIX")
    version_start_minor: int = Field(default=20, validation_alias="AC_VERSION_START_MINOR")
    version_base_ref: str = Field(default="origin/main", validation_alias="AC_VERSION_BASE_REF")
    version_increment: int = Field(default=1, validation_alias="AC_VERSION_INCREMENT")

    # infra tracking
    track_infra: bool = Field(default=True, validation_alias="AC_TRACK_INFRA")
    infra_doc_path: Path = Field(
        default=Path("Documentation/infrastructure.md"), validation_alias="AC_INFRA_DOC_PATH"
    )
    infra_rules_path: Path | None = Field(default=None, validation_alias="AC_INFRA_RULES_PATH")
    agent_name: str = Field(default="System", validation_alias=AliasChoices("AGENT_NAME", "USER"))

    log_level: str = Field(default="INFO", validation_alias="AC_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError("AC_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG")
        return normalized

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        value = value.strip()
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"AC_TZ is not a known time zone: {value!r}") from exc
        return value

    @field_validator("date_style", "clear_msg_when", mode="before")
    @classmethod
    def _lowercase_choice(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("static_branch", "msg_file", "infra_rules_path", mode="before")
    @classmethod
    def _blank_as_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("msg_pattern")
    @classmethod
    def _validate_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"AC_MSG_PATTERN is not a valid regular expression: {exc}") from exc
        return value

    @field_validator("msg_fallbacks", "watch_ignore", mode="before")
    @classmethod
    def _parse_path_list(cls, value):
        return _split_paths(value)

    @field_validator("msg_min_bytes", "msg_debounce_ms", "quiet_ms", "version_start_minor")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must be >= 0")
        return value

    @field_validator("version_increment")
    @classmethod
    def _positive_increment(cls, value: int) -> int:
        if value < 1:
            raise ValueError("AC_VERSION_INCREMENT must be >= 1")
        return value

    @property
    def compiled_msg_pattern(self) -> re.Pattern[str]:
        return re.compile(self.msg_pattern, re.MULTILINE)


@lru_cache(maxsize=1)
def get_settings() -> DayshiftSettings:
    """Return cached settings instance."""

    return DayshiftSettings()


__all__ = ["DEFAULT_MSG_PATTERN", "DayshiftSettings", "get_settings"]
