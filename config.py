"""
Configuration settings for the quiz session engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    storage_namespace: str = Field(
        default="quiz-app",
        description="Prefix applied to every persisted key (<namespace>-<key>)",
    )
    storage_dir: Path = Field(
        default=Path.home() / ".quizsession" / "storage",
        description="Directory backing the persistent key-value store",
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL for the bulk store (defaults to sqlite under storage_dir)",
    )

    # ─── Backend switches ───────────────────────────────────────────────────────
    enable_session_storage: bool = Field(
        default=True,
        description="In-process ephemeral store (lost when the process exits)",
    )
    enable_local_storage: bool = Field(
        default=True,
        description="Persistent JSON key-value store under storage_dir",
    )
    enable_database: bool = Field(
        default=False,
        description="Structured SQLAlchemy store for bulk/long-lived records",
    )

    save_interval_ms: int = Field(
        default=5000,
        description="Debounce window for queued (non-immediate) writes",
    )

    # ========================================
    # Timing
    # ========================================
    tick_interval_ms: int = Field(
        default=100,
        description="Timer tick period",
    )
    warning_threshold: float = Field(
        default=0.8,
        description="Fraction of a time limit at which a warning is emitted",
    )
    global_time_limit_ms: int | None = Field(
        default=None,
        description="Default whole-session time limit (None = unlimited)",
    )
    question_time_limit_ms: int | None = Field(
        default=None,
        description="Default per-question time limit (None = unlimited)",
    )

    # ========================================
    # Session defaults
    # ========================================
    auto_save_frequency_ms: int = Field(
        default=30000,
        description="Auto-save interval while a session is running",
    )
    max_hints: int = Field(
        default=3,
        description="Maximum hints per question",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Loguru sink level used by the CLI",
    )

    def get_database_url(self) -> str:
        """Resolve the bulk store URL, falling back to a sqlite file."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.storage_dir / 'quiz_sessions.db'}"

    def get_storage_config(self) -> dict[str, object]:
        """Get storage configuration as a dictionary."""
        return {
            "namespace": self.storage_namespace,
            "storage_dir": str(self.storage_dir),
            "database_url": self.get_database_url(),
            "backends": {
                "session_storage": self.enable_session_storage,
                "local_storage": self.enable_local_storage,
                "database": self.enable_database,
            },
            "save_interval_ms": self.save_interval_ms,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
