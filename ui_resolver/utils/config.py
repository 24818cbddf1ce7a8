# ui_resolver/utils/config.py
from __future__ import annotations

import functools
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------- Enums ----------

class BrowserType(str, Enum):
    chromium = "chromium"
    firefox = "firefox"
    webkit = "webkit"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ---------- Settings ----------

class Settings(BaseSettings):
    """
    Central configuration for the locator engine.

    Values load in this order of precedence:
      1) Environment variables
      2) .env file in project root
      3) Defaults below
    """

    # ---- Registry ----
    LOCATORS_PATH: Optional[Path] = Field(default=None, description="Registry file or directory override")

    # ---- Resolution timeouts ----
    DEFAULT_TIMEOUT_MS: int = Field(default=8000, gt=0, description="Per-candidate wait when a spec has none")
    HEALER_TIMEOUT_MS: int = Field(default=1200, gt=0)
    ACTION_TIMEOUT_MS: int = Field(default=10000, gt=0, description="Visibility gate for facade verbs")
    EXISTS_TIMEOUT_MS: int = Field(default=2000, gt=0)
    DEBUG_TIMEOUT_MS: int = Field(default=1000, gt=0)
    SNIPPET_MAX_CHARS: int = Field(default=200, ge=0)

    # ---- Compound operations (bounded poll + bounded retry) ----
    RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    RETRY_POLL_MS: int = Field(default=2500, gt=0)
    POLL_INTERVAL_MS: int = Field(default=150, ge=1)
    PROBE_TIMEOUT_MS: int = Field(default=800, gt=0)
    MODAL_CLOSE_TIMEOUT_MS: int = Field(default=6000, gt=0)

    # ---- Audit ----
    AUDIT_ENABLED: bool = Field(default=True, validation_alias=AliasChoices("AUDIT_ENABLED", "LOG_UI"))
    AUDIT_ATTACH_JSON: bool = Field(default=False, description="Flush steps as raw JSON instead of a table")
    AUDIT_DIR: Path = Field(default=Path("./reports/audit"))
    AUDIT_TABLE_MAX_ROWS: int = Field(default=50, ge=1)

    # ---- Browser (probe command only) ----
    HEADLESS: bool = Field(default=True, description="Run the browser headless")
    BROWSER_TYPE: BrowserType = Field(default=BrowserType.chromium, description="Playwright browser")
    PAGE_LOAD_TIMEOUT: int = Field(default=60000, ge=1000)

    # ---- Logging ----
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO)
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE: Path = Field(default=Path("./ui-resolver.log"))
    COLORIZED_OUTPUT: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("LOCATORS_PATH", "AUDIT_DIR", "LOG_FILE", mode="before")
    @classmethod
    def _coerce_to_path(cls, v, info: ValidationInfo):
        if isinstance(v, Path):
            return v
        v = "" if v is None else str(v).strip()
        if v:
            return Path(v)
        # blank env values fall back to the field default (None for LOCATORS_PATH)
        return cls.model_fields[info.field_name].default

    @field_validator("AUDIT_DIR", "LOG_FILE", mode="after")
    @classmethod
    def _absolutize(cls, v: Path):
        return v if v.is_absolute() else Path.cwd() / v

    def playwright_launch_kwargs(self) -> dict:
        return {"headless": self.HEADLESS}


# --------- Public accessor (memoized) ---------

@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings once per process.
    Call `get_settings.cache_clear()` if you need to reload after changing env.
    """
    return Settings()
