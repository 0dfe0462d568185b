"""
Configuration settings for the StudyBuddy service.

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
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///./studybuddy.db",
        description="SQLAlchemy connection string (PostgreSQL in production)",
    )

    # ========================================
    # Authentication
    # ========================================
    jwt_secret_key: str = Field(
        default="change-me",
        description="Shared secret used to verify bearer tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    access_token_expire_minutes: int = Field(
        default=120,
        description="Lifetime of developer tokens minted by the CLI",
    )

    # ========================================
    # AI Gateway (chat proxy)
    # ========================================
    ai_gateway_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1/chat/completions",
        description="OpenAI-compatible chat completions endpoint",
    )
    ai_gateway_api_key: str | None = Field(
        default=None,
        description="API key for the AI gateway",
    )
    ai_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Model requested from the gateway",
    )
    ai_gateway_timeout_ms: int = Field(
        default=30000,
        description="Gateway request timeout in milliseconds",
    )
    ai_gateway_retry_attempts: int = Field(
        default=3,
        description="Attempts before the gateway is reported unavailable",
    )
    chat_context_messages: int = Field(
        default=12,
        description="Number of trailing messages forwarded to the gateway",
    )

    # ========================================
    # Rate Limiting
    # ========================================
    chat_rate_limit: int = Field(
        default=50,
        description="Chat requests allowed per caller per window",
    )
    chat_rate_window_seconds: float = Field(
        default=60.0,
        description="Rate limit window length in seconds",
    )

    # ========================================
    # Adaptive Learning
    # ========================================
    proficiency_learning_rate: float = Field(
        default=0.3,
        description="EMA learning rate applied to (score - difficulty)",
    )
    default_proficiency: float = Field(
        default=0.5,
        description="Seed proficiency for a skill with no prior reports",
    )
    activity_locale: str = Field(
        default="ke",
        description="Catalog locale served to learners",
    )

    # ========================================
    # Hydration Cache
    # ========================================
    hydration_cache_backend: Literal["memory", "database"] = Field(
        default="database",
        description="Where starter activities are cached",
    )
    hydration_cache_ttl_seconds: float = Field(
        default=24 * 60 * 60,
        description="TTL for the in-memory hydration cache",
    )

    # ========================================
    # Device Sync Client
    # ========================================
    sync_dir: Path = Field(
        default=Path.home() / ".studybuddy",
        description="Directory holding the offline queue and activity cache",
    )
    report_api_url: str = Field(
        default="http://127.0.0.1:8100",
        description="Base URL of the StudyBuddy API used by the sync client",
    )
    report_api_token: str | None = Field(
        default=None,
        description="Bearer token used by the sync client",
    )
    activity_cache_size: int = Field(
        default=20,
        description="Number of recent activities kept on the device",
    )
    activity_cache_expiry_days: int = Field(
        default=3,
        description="Days before the device activity cache expires",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=8100,
        description="API server port",
    )

    def has_ai_configured(self) -> bool:
        """Check if the chat gateway can be reached."""
        return bool(self.ai_gateway_api_key)

    def get_adaptive_config(self) -> dict[str, float | str]:
        """Get adaptive learning configuration as a dictionary."""
        return {
            "learning_rate": self.proficiency_learning_rate,
            "default_proficiency": self.default_proficiency,
            "locale": self.activity_locale,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
