"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Each external collaborator (document store, vision providers) has its own
settings class and env prefix, so the app can start with only part of
them configured.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_VISION_MODELS = (
    "qwen/qwen2.5-vl-72b-instruct:free,"
    "qwen/qwen2.5-vl-32b-instruct:free,"
    "google/gemma-3-27b:free,"
    "google/gemma-3-12b:free,"
    "google/gemini-2.0-flash-exp:free"
)


class MongoSettings(BaseSettings):
    """MongoDB document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONGODB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    uri: str = Field(
        ...,
        description="MongoDB connection string"
    )
    database: str = Field(
        default="expenses-app",
        description="Database name"
    )

    # Collection names
    expenses_collection: str = Field(
        default="expenses-data",
        description="Collection holding expense records"
    )
    settings_collection: str = Field(
        default="settings-data",
        description="Collection holding the shared-account settings document"
    )
    conversion_collection: str = Field(
        default="conversion_table",
        description="Collection holding store-name conversion entries"
    )
    audit_collection: str = Field(
        default="audit-log",
        description="Collection holding audit events"
    )

    # Connection pool
    max_pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum connections in the client pool"
    )
    server_selection_timeout_ms: int = Field(
        default=10000,
        ge=100,
        description="How long to wait for a reachable server"
    )
    socket_timeout_ms: int = Field(
        default=45000,
        ge=100,
        description="Socket read/write timeout"
    )

    @field_validator('uri')
    @classmethod
    def validate_uri_scheme(cls, v: str) -> str:
        """Only accept mongodb:// and mongodb+srv:// connection strings."""
        v = v.strip()
        if not (v.startswith("mongodb://") or v.startswith("mongodb+srv://")):
            raise ValueError(
                "Invalid MongoDB URI: must start with mongodb:// or mongodb+srv://"
            )
        return v


class OpenRouterSettings(BaseSettings):
    """OpenRouter vision model configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OPENROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="OpenRouter API key"
    )
    base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenAI-compatible endpoint"
    )
    models: str = Field(
        default=DEFAULT_VISION_MODELS,
        description="Comma-separated vision models, tried in order"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-model request timeout"
    )
    max_tokens: int = Field(
        default=300,
        ge=50,
        le=4096,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    app_title: str = Field(
        default="Expenses App",
        description="Sent as X-Title for OpenRouter attribution"
    )

    @property
    def models_list(self) -> list[str]:
        """Get configured models as an ordered list."""
        return [m.strip() for m in self.models.split(",") if m.strip()]


class GeminiSettings(BaseSettings):
    """
    Direct Gemini configuration.

    Optional: when an API key is present a Gemini model is appended
    as the last link of the vision fallback chain.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=300,
        ge=50,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    url_domain: str = Field(
        default="http://localhost:3000",
        description="Public origin of the app (CORS origin in production, OpenRouter referer)"
    )
    api_prefix: str = Field(
        default="/api",
        description="Prefix for all HTTP routes"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="Interface the API server binds to"
    )
    api_port: int = Field(
        default=8000,
        description="Port the API server listens on"
    )

    # Upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )

    # Business defaults
    default_shared_account_balance: float = Field(
        default=0.0,
        ge=0,
        description="Shared account balance used until one is saved"
    )

    # Rate limiting
    rate_limit_max_requests: int = Field(
        default=100,
        ge=1,
        description="Requests allowed per client per window"
    )
    rate_limit_window_seconds: int = Field(
        default=900,
        ge=1,
        description="Rate limit window length"
    )

    @property
    def is_production(self) -> bool:
        return self.app_environment.lower() == "production"

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def mongodb(self) -> MongoSettings:
        return MongoSettings()

    @property
    def openrouter(self) -> OpenRouterSettings:
        return OpenRouterSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    """
    results = {}
    settings = get_settings()

    checks = {
        "mongodb": lambda: settings.mongodb,
        "openrouter": lambda: settings.openrouter,
        "app": lambda: settings.app,
    }
    for name, load in checks.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    # Gemini is optional; only report it as configured when a key exists
    try:
        results["gemini"] = settings.gemini.is_configured
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

    return results
