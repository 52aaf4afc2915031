"""
Pytest configuration and fixtures for the Market Translation API.

This module provides:
- Test settings with isolated test environment
- Translation cache fixtures backed by a temporary SQLite file
- Provider, fallback manager and service factories built on the mock provider
- Utility fixtures for common test scenarios
"""

import shutil
import tempfile
from typing import Callable, Generator, List, Optional

import pytest
from app.core.config import Settings
from app.models.translation import TranslationRequest
from app.services.translation.cache import TranslationCache
from app.services.translation.fallback_manager import (
    FallbackConfig,
    FallbackManager,
    ProviderRegistration,
    ProviderRegistry,
)
from app.services.translation.language_support import LanguageSupport
from app.services.translation.offline_queue import OfflineQueue
from app.services.translation.providers.base import TranslationProvider
from app.services.translation.providers.mock import MockTranslationProvider
from app.services.translation.translation_service import TranslationService


@pytest.fixture(scope="session")
def test_data_dir() -> Generator[str, None, None]:
    """Create a temporary directory for test data.

    The directory is automatically cleaned up after all tests complete.

    Yields:
        str: Path to the temporary test data directory
    """
    temp_dir = tempfile.mkdtemp(prefix="translation_test_")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="session")
def test_settings(test_data_dir: str) -> Settings:
    """Create test settings with isolated test environment.

    No provider credentials are set, so the mock provider is used, and the
    offline queue replay loop is disabled.
    """
    return Settings(
        DEBUG=True,
        DATA_DIR=test_data_dir,
        ENVIRONMENT="testing",
        TRANSLATION_OFFLINE_QUEUE_REPLAY_INTERVAL_MS=0,
    )


@pytest.fixture
def make_request() -> Callable[..., TranslationRequest]:
    """Factory for translation requests with en->es defaults."""

    def _make(
        text: str = "Hello",
        source_lang: str = "en",
        target_lang: str = "es",
        **kwargs,
    ) -> TranslationRequest:
        return TranslationRequest(
            text=text, source_lang=source_lang, target_lang=target_lang, **kwargs
        )

    return _make


@pytest.fixture
def translation_cache(tmp_path) -> TranslationCache:
    """Translation cache with its L3 tier in a per-test SQLite file."""
    return TranslationCache(db_path=str(tmp_path / "translation_cache.db"), l1_size=100)


@pytest.fixture
def fallback_config() -> FallbackConfig:
    """Small timings so timeout paths run quickly."""
    return FallbackConfig(
        circuit_breaker_threshold=5,
        circuit_breaker_timeout_ms=60000,
        health_check_interval_ms=30000,
        max_response_time_ms=200,
    )


@pytest.fixture
def make_manager(
    fallback_config: FallbackConfig,
) -> Callable[..., FallbackManager]:
    """Build a FallbackManager over the given providers, first one primary."""

    def _make(
        providers: List[TranslationProvider],
        cache: Optional[TranslationCache] = None,
        config: Optional[FallbackConfig] = None,
    ) -> FallbackManager:
        registry = ProviderRegistry(
            ProviderRegistration(p, primary=(i == 0)) for i, p in enumerate(providers)
        )
        return FallbackManager(registry, config=config or fallback_config, cache=cache)

    return _make


@pytest.fixture
def google_provider() -> MockTranslationProvider:
    return MockTranslationProvider(name="google")


@pytest.fixture
def azure_provider() -> MockTranslationProvider:
    return MockTranslationProvider(name="azure")


@pytest.fixture
def translation_service(
    make_manager, translation_cache, google_provider, azure_provider
) -> TranslationService:
    """Service over two mock providers (google primary, azure fallback)."""
    manager = make_manager([google_provider, azure_provider], cache=translation_cache)
    return TranslationService(
        fallback_manager=manager,
        cache=translation_cache,
        language_support=LanguageSupport(),
        offline_queue=OfflineQueue(capacity=10),
        batch_concurrency=5,
    )


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
