"""Translation package for the multilingual trading platform.

This package provides:
- LanguageSupport: Language pair validation and pattern-based detection
- TranslationCache: Multi-tier caching (L1 memory + L3 SQLite)
- FallbackManager: Ordered providers with circuit breakers and health checks
- OfflineQueue: Bounded queue absorbing requests during provider outages
- ContextManager: Per-session conversation context
- TranslationService: Main orchestrator used by the HTTP routes
"""

from app.services.translation.cache import TranslationCache
from app.services.translation.context_manager import ContextManager
from app.services.translation.fallback_manager import (
    CircuitState,
    FallbackConfig,
    FallbackManager,
    ProviderHealth,
    ProviderRegistration,
    ProviderRegistry,
)
from app.services.translation.language_support import (
    SUPPORTED_LANGUAGES,
    LanguageSupport,
)
from app.services.translation.offline_queue import OfflineQueue
from app.services.translation.translation_service import TranslationService

__all__ = [
    "CircuitState",
    "ContextManager",
    "FallbackConfig",
    "FallbackManager",
    "LanguageSupport",
    "OfflineQueue",
    "ProviderHealth",
    "ProviderRegistration",
    "ProviderRegistry",
    "SUPPORTED_LANGUAGES",
    "TranslationCache",
    "TranslationService",
]
