"""
Configuration management for Health Companion.

Uses Pydantic Settings for type-safe environment variable handling.
All configuration is loaded from environment variables or .env file.
Secrets default to empty strings; components call ``require`` on first
use so a missing value fails loudly instead of degrading.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from health_companion.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "Health Companion"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8000

    # ==========================================================================
    # Object Storage (Cloudinary)
    # ==========================================================================
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    upload_folder: str = "medical_reports"
    upload_timeout_seconds: float = 60.0

    # ==========================================================================
    # Language Model (Gemini)
    # ==========================================================================
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    llm_timeout_seconds: float = 60.0

    # ==========================================================================
    # Firebase (Auth + Firestore)
    # ==========================================================================
    firebase_credentials_path: str = ""
    firebase_project_id: str = ""
    reports_collection: str = "medicalReports"
    conversations_collection: str = "conversations"

    # ==========================================================================
    # Context Window
    # ==========================================================================
    report_context_limit: int = 5
    history_context_limit: int = 10

    # ==========================================================================
    # Speech Output
    # ==========================================================================
    speech_backend: Literal["gtts", "none"] = "gtts"
    speech_language: str = "hi-IN"
    speech_default_language: str = "en"
    audio_dir: str = "audio"
    speech_clip_ttl_seconds: float = 3600.0

    # ==========================================================================
    # Uploads, Rate Limiting & Streaming
    # ==========================================================================
    max_file_size_mb: int = 10
    rate_limit_per_minute: int = 30
    stream_keepalive_seconds: float = 15.0

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def max_file_size_bytes(self) -> int:
        """Maximum report size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def audio_path(self) -> Path:
        """Path to the synthesized speech directory."""
        path = Path(self.audio_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def require(self, *names: str) -> None:
        """
        Ensure the named settings carry a value.

        Args:
            names: Setting attribute names (e.g. ``"gemini_api_key"``)

        Raises:
            ConfigurationError: Listing the environment variables to set
        """
        missing = [name.upper() for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience access
settings = get_settings()
