"""
Configuration Management System
================================
Implements environment-driven configuration with type-safe validation,
hierarchical overrides, and zero-runtime-cost abstractions through Pydantic.

Model endpoint credentials are optional at load time: they are checked when a
model call is made, so the service can boot (and serve health checks) without
them.

Architecture: Strategy Pattern + Singleton + Functional Composition
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import ACTIVITY_WINDOW, TOKEN_BUDGETS
from core.exceptions import MissingConfigurationError


class LLMSettings(BaseSettings):
    """Azure OpenAI (or compatible) chat-completions endpoint configuration."""

    endpoint: Optional[str] = Field(default=None)
    api_key: Optional[SecretStr] = Field(default=None)
    deployment: Optional[str] = Field(default=None)
    api_version: str = Field(default="2024-06-01")

    request_timeout: float = Field(default=25.0, gt=0.0, le=600.0)
    max_retries: int = Field(default=2, ge=1, le=10)

    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    repair_temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="AZURE_OPENAI_", case_sensitive=False, extra="ignore"
    )

    @field_validator("endpoint")
    @classmethod
    def strip_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Drop trailing slashes so deployment paths join cleanly."""
        if v is None:
            return v
        v = v.strip().rstrip("/")
        return v or None

    def require(self) -> None:
        """
        Ensure credentials needed for a model call are present.

        Raises:
            MissingConfigurationError: naming the first missing parameter
        """
        if not self.endpoint:
            raise MissingConfigurationError("AZURE_OPENAI_ENDPOINT")
        if not self.api_key or not self.api_key.get_secret_value():
            raise MissingConfigurationError("AZURE_OPENAI_API_KEY")
        if not self.deployment:
            raise MissingConfigurationError("AZURE_OPENAI_DEPLOYMENT")


class GenerationSettings(BaseSettings):
    """Token budgets for each stage of the generation pipeline."""

    single_field_html_max_tokens: int = Field(default=TOKEN_BUDGETS.SINGLE_FIELD_HTML, ge=100)
    json_base_max_tokens: int = Field(default=TOKEN_BUDGETS.JSON_BASE, ge=100)
    json_tokens_per_field: int = Field(default=TOKEN_BUDGETS.JSON_PER_FIELD, ge=50)
    json_max_tokens_ceiling: int = Field(default=TOKEN_BUDGETS.JSON_CEILING, ge=100)
    field_repair_default_max_tokens: int = Field(
        default=TOKEN_BUDGETS.FIELD_REPAIR_DEFAULT, ge=50
    )
    field_repair_max_tokens_ceiling: int = Field(
        default=TOKEN_BUDGETS.FIELD_REPAIR_CEILING, ge=100
    )

    model_config = SettingsConfigDict(
        env_prefix="GENERATION_", case_sensitive=False, extra="ignore"
    )


class ActivitySettings(BaseSettings):
    """In-memory request telemetry configuration."""

    window_seconds: float = Field(default=ACTIVITY_WINDOW.WINDOW_SECONDS, gt=0.0)
    cleanup_interval_seconds: float = Field(
        default=ACTIVITY_WINDOW.CLEANUP_INTERVAL_SECONDS, gt=0.0
    )
    assumed_request_limit: int = Field(default=ACTIVITY_WINDOW.ASSUMED_REQUEST_LIMIT, ge=1)
    warning_threshold_pct: float = Field(
        default=ACTIVITY_WINDOW.WARNING_THRESHOLD_PCT, ge=0.0, le=100.0
    )
    critical_threshold_pct: float = Field(
        default=ACTIVITY_WINDOW.CRITICAL_THRESHOLD_PCT, ge=0.0, le=100.0
    )

    model_config = SettingsConfigDict(env_prefix="ACTIVITY_", case_sensitive=False, extra="ignore")


class MonitoringSettings(BaseSettings):
    """Observability and monitoring configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    enable_prometheus: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="MONITORING_", case_sensitive=False, extra="ignore"
    )


class Settings(BaseSettings):
    """
    Master configuration orchestrator.

    Implements hierarchical configuration composition with environment-specific
    overrides and runtime validation.
    """

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    debug: bool = Field(default=False, alias="DEBUG")

    # Application metadata
    app_name: str = Field(default="Brand Content Engine")
    app_version: str = Field(default="1.0.0")

    # Component configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    activity: ActivitySettings = Field(default_factory=ActivitySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("debug")
    @classmethod
    def validate_debug_mode(cls, v: bool, info) -> bool:
        """Ensure debug mode is disabled in production."""
        if info.data.get("environment") == "production" and v:
            raise ValueError("Debug mode must be disabled in production")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Singleton factory for global settings access.

    Uses LRU cache to ensure single instance across application lifetime.

    Returns:
        Settings: Validated, immutable settings instance
    """
    return Settings()


# Module-level convenience exports
settings = get_settings()

__all__ = [
    "Settings",
    "LLMSettings",
    "GenerationSettings",
    "ActivitySettings",
    "MonitoringSettings",
    "get_settings",
    "settings",
]
