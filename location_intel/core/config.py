"""
Configuration module with strict validation.

Key principles:
- Every credential is OPTIONAL: with none configured the engine still
  answers from the free map sources, just with fewer data points
- Timeouts and agent budgets are configurable
- Safe defaults for all optional settings
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Commercial places API (OPTIONAL)
    google_places_api_key: Optional[str] = Field(
        default=None,
        description="Google Places API (v1) key - enables ratings, prices and reviews"
    )

    # LLM providers (OPTIONAL, first configured one wins unless llm_provider is set)
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key"
    )

    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API key"
    )

    groq_api_key: Optional[str] = Field(
        default=None,
        description="Groq API key (OpenAI-compatible endpoint)"
    )

    llm_provider: Optional[str] = Field(
        default=None,
        description="Force an LLM provider: openai, anthropic or groq"
    )

    llm_model: Optional[str] = Field(
        default=None,
        description="Model name override for the selected provider"
    )

    llm_max_tokens: int = Field(
        default=800,
        ge=50,
        le=8000,
        description="Maximum output tokens for classification calls"
    )

    # Key-value cache (OPTIONAL)
    upstash_redis_rest_url: Optional[str] = Field(
        default=None,
        description="Upstash Redis REST endpoint"
    )

    upstash_redis_rest_token: Optional[str] = Field(
        default=None,
        description="Upstash Redis REST token"
    )

    cache_backend: str = Field(
        default="auto",
        description="Cache backend: auto (Upstash when configured), memory or none"
    )

    # Upstream endpoints
    overpass_base_url: str = Field(
        default="https://overpass-api.de/api/interpreter",
        description="Overpass API interpreter endpoint"
    )

    # Timeouts and budgets
    provider_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        le=60.0,
        description="Per-call timeout for open data providers"
    )

    places_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60.0,
        description="Per-call timeout for the commercial places API"
    )

    agent_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120.0,
        description="Wall-clock budget for the classification agent"
    )

    agent_max_steps: int = Field(
        default=8,
        ge=1,
        le=20,
        description="Maximum model turns for the classification agent"
    )

    concept_check_timeout_seconds: float = Field(
        default=25.0,
        gt=0,
        le=300.0,
        description="Global deadline for a concept viability check"
    )

    default_radius_meters: int = Field(
        default=500,
        ge=50,
        le=5000,
        description="Radius used when the caller does not pass one"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Validate cache backend name."""
        v_lower = v.lower()
        if v_lower not in {"auto", "memory", "none"}:
            raise ValueError("cache_backend must be one of auto, memory, none")
        return v_lower

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: Optional[str]) -> Optional[str]:
        """Validate the forced LLM provider, if any."""
        if v is None or v == "":
            return None
        v_lower = v.lower()
        if v_lower not in {"openai", "anthropic", "groq"}:
            raise ValueError("llm_provider must be one of openai, anthropic, groq")
        return v_lower

    def get_google_places_api_key(self) -> Optional[str]:
        """
        Get the Google Places key if configured.

        Without it, competitor data comes from OpenStreetMap only and
        the classifier cannot investigate reviews.
        """
        return self.google_places_api_key or None

    def get_openai_api_key(self) -> Optional[str]:
        """Get OpenAI API key if configured."""
        return self.openai_api_key or None

    def get_anthropic_api_key(self) -> Optional[str]:
        """Get Anthropic API key if configured."""
        return self.anthropic_api_key or None

    def get_groq_api_key(self) -> Optional[str]:
        """Get Groq API key if configured."""
        return self.groq_api_key or None

    def is_cache_configured(self) -> bool:
        """True when both Upstash connection settings are present."""
        return bool(self.upstash_redis_rest_url and self.upstash_redis_rest_token)


# Global settings instance (lazy-loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton pattern).

    Returns:
        Settings: Application settings
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
