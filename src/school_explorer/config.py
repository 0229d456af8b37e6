"""Configuration management for School Explorer."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="",
        populate_by_name=True,
    )

    # Model credentials (absence disables the feature, it is not an error)
    anthropic_api_key: SecretStr | None = Field(
        default=None, description="Anthropic API key for chat and the quality judge"
    )
    gemini_api_key: SecretStr | None = Field(
        default=None, description="Gemini API key for follow-up suggestions"
    )

    # Model Configuration
    chat_model: str = Field(
        default="claude-sonnet-4-20250514", description="Claude model answering chat turns"
    )
    judge_model: str = Field(
        default="claude-3-haiku-20240307", description="Claude model scoring responses"
    )
    suggestion_model: str = Field(
        default="gemini-2.5-flash", description="Gemini model generating follow-ups"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Logging Configuration
    log_to_file: bool = Field(default=False, description="Enable file-based logging")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=52428800,  # 50MB
        description="Max size per log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=10, description="Number of rotated log files to keep"
    )
    log_file_prefix: str = Field(
        default="school_explorer", description="Prefix for log file names"
    )

    # Rate limiting and budget
    rate_limit_enabled: bool = Field(
        default=True, description="Enforce per-identity rate limits and the daily budget"
    )
    rate_limit_per_minute: int = Field(default=10, description="Requests per identity per minute")
    rate_limit_per_hour: int = Field(default=100, description="Requests per identity per hour")
    rate_limit_sweep_interval: float = Field(
        default=300.0, description="Seconds between sweeps of expired rate windows"
    )
    daily_budget_usd: float = Field(default=50.0, description="Daily model spend ceiling in USD")
    cost_per_million_tokens: float = Field(
        default=3.0, description="Approximate blended USD cost per million tokens"
    )

    # Evaluation and suggestions
    enable_evaluation: bool = Field(
        default=True, description="Score responses with the LLM judge after delivery"
    )
    evaluation_timeout: float = Field(default=30.0, description="Judge call timeout in seconds")
    suggestion_timeout: float = Field(
        default=15.0, description="Suggestion generation timeout in seconds"
    )

    # Evaluation log sinks
    evaluation_webhook_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("EVALUATION_WEBHOOK_URL", "ZAPIER_WEBHOOK_URL"),
        description="Webhook receiving flagged evaluations for human review",
    )
    evaluation_log_path: str = Field(
        default="logs/evaluations.jsonl", description="Append-only local evaluation log"
    )
    webhook_timeout: float = Field(default=10.0, description="Webhook POST timeout in seconds")

    # Public API
    api_host: str = Field(
        default="0.0.0.0",  # nosec B104 - Intentional for Docker container
        description="Host interface for the HTTP API",
    )
    api_port: int = Field(default=8080, description="Port for the HTTP API")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the logging level name."""
        if v.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return v.upper()

    @field_validator("rate_limit_per_minute", "rate_limit_per_hour")
    @classmethod
    def validate_positive_limit(cls, v: int) -> int:
        """Validate that rate ceilings are positive."""
        if v < 1:
            raise ValueError("Rate limits must be at least 1")
        return v

    @field_validator("daily_budget_usd", "cost_per_million_tokens")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate that money values are not negative."""
        if v < 0:
            raise ValueError("Budget values must not be negative")
        return v

    @property
    def log_file_path(self) -> str:
        """Get the full log file path."""
        return f"{self.log_directory}/{self.log_file_prefix}.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def evaluation_available(self) -> bool:
        """Whether the judge can run (enabled and credentials present)."""
        return self.enable_evaluation and self.anthropic_api_key is not None

    @property
    def suggestions_available(self) -> bool:
        """Whether LLM suggestions can run (credentials present)."""
        return self.gemini_api_key is not None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
