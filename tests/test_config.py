"""
Unit tests for configuration module.

Tests run WITHOUT .env file and WITHOUT API keys.
"""
import pytest

from location_intel.core.config import Settings, get_settings, reset_settings


@pytest.mark.unit
def test_config_starts_without_any_credentials(clean_env):
    """Every integration is optional."""
    settings = Settings(_env_file=None)

    assert settings.get_google_places_api_key() is None
    assert settings.get_openai_api_key() is None
    assert settings.get_anthropic_api_key() is None
    assert settings.get_groq_api_key() is None
    assert settings.is_cache_configured() is False


@pytest.mark.unit
def test_config_defaults(clean_env):
    """Test default values for optional settings."""
    settings = Settings(_env_file=None)

    assert settings.cache_backend == "auto"
    assert settings.provider_timeout_seconds == 8.0
    assert settings.places_timeout_seconds == 5.0
    assert settings.agent_timeout_seconds == 15.0
    assert settings.agent_max_steps == 8
    assert settings.concept_check_timeout_seconds == 25.0
    assert settings.default_radius_meters == 500
    assert settings.log_level == "INFO"
    assert settings.overpass_base_url == "https://overpass-api.de/api/interpreter"


@pytest.mark.unit
def test_config_custom_values(clean_env, monkeypatch):
    """Values are read from the environment."""
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "places-key")
    monkeypatch.setenv("AGENT_MAX_STEPS", "4")
    monkeypatch.setenv("CONCEPT_CHECK_TIMEOUT_SECONDS", "10")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.get_google_places_api_key() == "places-key"
    assert settings.agent_max_steps == 4
    assert settings.concept_check_timeout_seconds == 10.0
    assert settings.log_level == "DEBUG"


@pytest.mark.unit
def test_config_empty_key_is_unconfigured(clean_env, monkeypatch):
    """An empty string counts as no key."""
    monkeypatch.setenv("OPENAI_API_KEY", "")

    settings = Settings(_env_file=None)
    assert settings.get_openai_api_key() is None


@pytest.mark.unit
def test_config_cache_configured_needs_url_and_token(clean_env, monkeypatch):
    monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://example.upstash.io")
    assert Settings(_env_file=None).is_cache_configured() is False

    monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "token")
    assert Settings(_env_file=None).is_cache_configured() is True


@pytest.mark.unit
def test_config_invalid_log_level(clean_env, monkeypatch):
    """Log level must be a standard level."""
    monkeypatch.setenv("LOG_LEVEL", "INVALID")

    with pytest.raises(Exception):  # Pydantic validation error
        Settings(_env_file=None)


@pytest.mark.unit
def test_config_invalid_cache_backend(clean_env, monkeypatch):
    monkeypatch.setenv("CACHE_BACKEND", "redis")

    with pytest.raises(Exception):
        Settings(_env_file=None)


@pytest.mark.unit
def test_config_llm_provider_normalized(clean_env, monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "Groq")
    assert Settings(_env_file=None).llm_provider == "groq"

    monkeypatch.setenv("LLM_PROVIDER", "mistral")
    with pytest.raises(Exception):
        Settings(_env_file=None)


@pytest.mark.unit
def test_config_agent_steps_bounds(clean_env, monkeypatch):
    """Agent step budget must stay within 1-20."""
    monkeypatch.setenv("AGENT_MAX_STEPS", "0")
    with pytest.raises(Exception):
        Settings(_env_file=None)

    monkeypatch.setenv("AGENT_MAX_STEPS", "21")
    with pytest.raises(Exception):
        Settings(_env_file=None)


@pytest.mark.unit
def test_config_singleton(clean_env):
    """get_settings returns the same instance until reset."""
    settings1 = get_settings()
    settings2 = get_settings()
    assert settings1 is settings2

    reset_settings()
    settings3 = get_settings()
    assert settings3 is not settings1
