# ledgerx/config.py
"""
LEDGERX configuration, read from LEDGERX_* environment variables and .env.

Resolution order: CLI flags > env vars (LEDGERX_*) > .env file > defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerxConfig(BaseSettings):
    """Central configuration for LEDGERX."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- LLM ---
    lm: str = "openai/gpt-4o-mini"
    api_key: str = ""
    api_base: str = ""
    lm_temperature: float = 0.0
    lm_max_tokens: int = 4000
    oracle_timeout: int = 120

    # --- Processing ---
    segment_max_chars: int = Field(default=4000, gt=0)
    # Upstream rate limits make unbounded fan-out a bad default.
    concurrency_limit: int = Field(default=4, ge=1)
    fail_on_segment_error: bool = True

    # --- Retry ---
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_base: float = 2.0
    retry_backoff_max: float = 30.0

    # --- Paths ---
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".ledgerx")

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"

    @property
    def output_dir(self) -> Path:
        return self.home_dir / "outputs"

    # --- Export ---
    default_export_formats: list[Literal["json", "csv", "jsonl"]] = Field(
        default_factory=lambda: ["json"]
    )


@lru_cache(maxsize=1)
def get_config() -> LedgerxConfig:
    """Return the global config singleton."""
    return LedgerxConfig()
