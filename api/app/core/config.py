import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # API settings
    DEBUG: bool = False
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Market Translation API"
    LOG_LEVEL: str = "INFO"

    # CORS settings - accepts string or list, normalized to list[str] by validator
    CORS_ORIGINS: str | list[str] = "*"

    # Directory settings
    DATA_DIR: str = "api/data"

    # Google Cloud Translation (v2 REST API)
    GOOGLE_TRANSLATE_API_KEY: str = ""
    GOOGLE_CLOUD_PROJECT_ID: str = ""
    GOOGLE_TRANSLATE_ENDPOINT: str = "https://translation.googleapis.com"

    # Azure Translator (v3 REST API)
    AZURE_TRANSLATOR_KEY: str = ""
    AZURE_TRANSLATOR_REGION: str = "global"
    AZURE_TRANSLATOR_ENDPOINT: str = "https://api.cognitive.microsofttranslator.com"

    # Provider registry
    TRANSLATION_PRIMARY_PROVIDER: str = "google"
    TRANSLATION_ENABLE_MOCK_PROVIDER: bool = (
        False  # Registers the mock provider (always used when no keys are set)
    )

    # Fallback / circuit breaker settings (milliseconds)
    TRANSLATION_MAX_RETRIES: int = 3  # Informational, providers are never retried per call
    TRANSLATION_RETRY_DELAY_MS: int = 1000
    TRANSLATION_CIRCUIT_BREAKER_THRESHOLD: int = 5
    TRANSLATION_CIRCUIT_BREAKER_TIMEOUT_MS: int = 60000  # 1 minute
    TRANSLATION_HEALTH_CHECK_INTERVAL_MS: int = 30000  # 30 seconds
    TRANSLATION_MAX_RESPONSE_TIME_MS: int = 10000  # 10 seconds

    # Translation cache (L1 memory + L3 SQLite)
    TRANSLATION_CACHE_L1_SIZE: int = 1000
    TRANSLATION_CACHE_DEFAULT_TTL: int = 3600  # 1 hour
    TRANSLATION_CACHE_CONTEXT_TTL: int = 7200  # 2 hours for context-aware requests
    TRANSLATION_CACHE_FREQUENT_TTL: int = 86400  # 24 hours for hot entries

    # Offline queue and batch processing
    TRANSLATION_OFFLINE_QUEUE_CAPACITY: int = 1000
    TRANSLATION_OFFLINE_QUEUE_REPLAY_INTERVAL_MS: int = 60000  # 0 disables replay
    TRANSLATION_BATCH_CONCURRENCY: int = 5
    TRANSLATION_BATCH_MAX_SIZE: int = 100

    # Language settings
    TRANSLATION_DEFAULT_LANGUAGE: str = "en"

    # Conversation context
    CONTEXT_MAX_MESSAGES: int = 10
    CONTEXT_TTL_SECONDS: int = 3600
    CONTEXT_MAX_SESSIONS: int = 10000

    # Environment settings
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",  # Enable .env file loading
        extra="ignore",
    )

    @property
    def TRANSLATION_CACHE_DB_PATH(self) -> str:
        """Complete path to the SQLite translation cache"""
        return os.path.join(self.DATA_DIR, "translation_cache.db")

    def get_data_path(self, *path_parts) -> str:
        """Utility method to construct paths within DATA_DIR

        Args:
            *path_parts: Path components to join with DATA_DIR

        Returns:
            Complete path within DATA_DIR
        """
        return os.path.join(self.DATA_DIR, *path_parts)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Normalize CORS_ORIGINS to a list of origins.

        Accepts either a comma-separated string or a list of strings.
        """
        if isinstance(v, list):
            return [origin.strip() for origin in v if origin and origin.strip()]
        if isinstance(v, str):
            origins = [origin.strip() for origin in v.split(",") if origin.strip()]
            return origins or ["*"]
        return ["*"]

    @field_validator(
        "TRANSLATION_RETRY_DELAY_MS",
        "TRANSLATION_CIRCUIT_BREAKER_TIMEOUT_MS",
        "TRANSLATION_HEALTH_CHECK_INTERVAL_MS",
        "TRANSLATION_MAX_RESPONSE_TIME_MS",
    )
    @classmethod
    def validate_positive_interval(cls, v: int, info) -> int:
        """Validate that timing knobs are strictly positive.

        Raises:
            ValueError: If the interval is zero or negative
        """
        if v <= 0:
            raise ValueError(f"{info.field_name} must be greater than 0, got {v}")
        return v

    @field_validator("TRANSLATION_OFFLINE_QUEUE_REPLAY_INTERVAL_MS")
    @classmethod
    def validate_replay_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError(
                f"TRANSLATION_OFFLINE_QUEUE_REPLAY_INTERVAL_MS must be >= 0, got {v}"
            )
        return v

    @field_validator(
        "TRANSLATION_CIRCUIT_BREAKER_THRESHOLD",
        "TRANSLATION_OFFLINE_QUEUE_CAPACITY",
        "TRANSLATION_BATCH_CONCURRENCY",
        "TRANSLATION_BATCH_MAX_SIZE",
        "TRANSLATION_CACHE_L1_SIZE",
        "CONTEXT_MAX_MESSAGES",
    )
    @classmethod
    def validate_at_least_one(cls, v: int, info) -> int:
        """Validate counters and capacities are at least 1.

        Raises:
            ValueError: If the value is below 1
        """
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1, got {v}")
        return v

    @field_validator("TRANSLATION_DEFAULT_LANGUAGE")
    @classmethod
    def validate_default_language(cls, v: str) -> str:
        """Validate the platform default language is a supported code.

        Raises:
            ValueError: If the language is not in the supported set
        """
        # Imported lazily to keep settings import free of service modules
        from app.services.translation.language_support import SUPPORTED_LANGUAGES

        normalized = v.strip().lower()
        if normalized not in SUPPORTED_LANGUAGES:
            raise ValueError(
                f"TRANSLATION_DEFAULT_LANGUAGE must be one of "
                f"{', '.join(SUPPORTED_LANGUAGES)}, got '{v}'"
            )
        return normalized

    @field_validator("TRANSLATION_PRIMARY_PROVIDER")
    @classmethod
    def validate_primary_provider(cls, v: str) -> str:
        normalized = v.strip().lower()
        supported_providers = ["google", "azure", "mock"]
        if normalized not in supported_providers:
            raise ValueError(
                f"Unsupported provider '{v}'. "
                f"Supported providers: {', '.join(supported_providers)}"
            )
        return normalized

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Make paths absolute
        self.DATA_DIR = os.path.abspath(self.DATA_DIR)

    def ensure_data_dirs(self) -> None:
        """Create required data directories if they don't exist.

        This method is called during application startup (lifespan) to avoid
        import-time side effects and I/O operations.
        """
        Path(self.DATA_DIR).mkdir(parents=True, exist_ok=True)


# Thread-safe lazy initialization using lru_cache
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.
    This prevents module-level side effects and allows testing without environment variables.

    Returns:
        Settings: Application settings object
    """
    return Settings()


def reset_settings() -> None:
    """Reset the cached settings instance.

    Useful for testing when you need to reload settings with different values.
    """
    get_settings.cache_clear()
