"""
Configuration settings for the lumen-sync data layer.

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
    # Remote Document Store
    # ========================================
    remote_store_url: str | None = Field(
        default=None,
        description="Base URL of the remote document database (None = offline)",
    )
    remote_store_api_key: str | None = Field(
        default=None,
        description="API key for the remote document database",
    )

    # ========================================
    # Blob Store
    # ========================================
    blob_store_url: str | None = Field(
        default=None,
        description="Base URL of the binary blob store (None = offline)",
    )
    blob_store_api_key: str | None = Field(
        default=None,
        description="API key for the binary blob store",
    )
    mock_storage_base_url: str = Field(
        default="https://mock-storage.lumen.ai",
        description="Prefix for synthetic asset URLs when uploads fall back",
    )
    upload_chunk_size: int = Field(
        default=64 * 1024,
        description="Bytes per chunk when streaming uploads (progress granularity)",
    )

    # ========================================
    # Offline Behavior
    # ========================================
    demo_mode: bool = Field(
        default=False,
        description="Force offline operation even when credentials are present",
    )
    local_cache_dir: Path = Field(
        default=Path.home() / ".lumen" / "cache",
        description="Directory holding the local override cache",
    )

    # ========================================
    # Network Timeouts
    # ========================================
    request_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for ordinary remote reads and writes",
    )
    probe_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for connectivity probes",
    )

    # ========================================
    # Progression
    # ========================================
    progression_max_retries: int = Field(
        default=5,
        description="Compare-and-set attempts before an experience award gives up",
    )

    # ========================================
    # Language Model (grading / examiner)
    # ========================================
    llm_api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the hosted language model API",
    )
    llm_api_key: str | None = Field(
        default=None,
        description="Language model API key (None = demo responses)",
    )
    llm_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for grading and examination",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    @property
    def has_remote_store(self) -> bool:
        """Check if the remote document store is usable."""
        return bool(self.remote_store_url) and not self.demo_mode

    @property
    def has_blob_store(self) -> bool:
        """Check if the blob store is usable."""
        return bool(self.blob_store_url) and not self.demo_mode


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
