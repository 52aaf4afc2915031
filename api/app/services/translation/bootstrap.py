"""Build the translation object graph from application settings."""

import logging
from typing import List, Optional

from app.core.config import Settings
from app.services.translation.cache import TranslationCache
from app.services.translation.context_manager import ContextManager
from app.services.translation.fallback_manager import (
    FallbackConfig,
    FallbackManager,
    ProviderRegistration,
    ProviderRegistry,
)
from app.services.translation.language_support import LanguageSupport
from app.services.translation.offline_queue import OfflineQueue
from app.services.translation.providers import (
    AzureTranslationProvider,
    GoogleTranslationProvider,
    MockTranslationProvider,
    TranslationProvider,
)
from app.services.translation.trade_terminology import TradeTerminology
from app.services.translation.translation_service import TranslationService

logger = logging.getLogger(__name__)


def build_provider_registrations(settings: Settings) -> List[ProviderRegistration]:
    """Declare providers in fallback order, marking the configured primary.

    Google and Azure are only registered when their credentials are set.
    The mock provider is added when enabled explicitly or when nothing else
    is configured, so local development works without keys.
    """
    timeout_s = settings.TRANSLATION_MAX_RESPONSE_TIME_MS / 1000
    providers: List[TranslationProvider] = []

    if settings.GOOGLE_TRANSLATE_API_KEY:
        providers.append(
            GoogleTranslationProvider(
                api_key=settings.GOOGLE_TRANSLATE_API_KEY,
                project_id=settings.GOOGLE_CLOUD_PROJECT_ID or None,
                endpoint=settings.GOOGLE_TRANSLATE_ENDPOINT,
                timeout=timeout_s,
                terminology=TradeTerminology(),
            )
        )
    if settings.AZURE_TRANSLATOR_KEY:
        providers.append(
            AzureTranslationProvider(
                subscription_key=settings.AZURE_TRANSLATOR_KEY,
                region=settings.AZURE_TRANSLATOR_REGION,
                endpoint=settings.AZURE_TRANSLATOR_ENDPOINT,
                timeout=timeout_s,
            )
        )
    if settings.TRANSLATION_ENABLE_MOCK_PROVIDER or not providers:
        if not providers:
            logger.warning(
                "No translation provider credentials configured, using mock provider"
            )
        providers.append(MockTranslationProvider())

    primary: Optional[str] = settings.TRANSLATION_PRIMARY_PROVIDER
    if primary not in {p.name for p in providers}:
        logger.warning(
            f"Primary provider '{primary}' is not configured, "
            f"falling back to '{providers[0].name}'"
        )
        primary = providers[0].name

    return [ProviderRegistration(p, primary=p.name == primary) for p in providers]


def create_translation_service(settings: Settings) -> TranslationService:
    """Create a fully wired, not yet started, TranslationService."""
    settings.ensure_data_dirs()

    cache = TranslationCache(
        db_path=settings.TRANSLATION_CACHE_DB_PATH,
        l1_size=settings.TRANSLATION_CACHE_L1_SIZE,
        default_ttl=settings.TRANSLATION_CACHE_DEFAULT_TTL,
        context_ttl=settings.TRANSLATION_CACHE_CONTEXT_TTL,
        frequent_ttl=settings.TRANSLATION_CACHE_FREQUENT_TTL,
    )
    registry = ProviderRegistry(build_provider_registrations(settings))
    fallback_manager = FallbackManager(
        registry, config=FallbackConfig.from_settings(settings), cache=cache
    )

    service = TranslationService(
        fallback_manager=fallback_manager,
        cache=cache,
        language_support=LanguageSupport(
            default_language=settings.TRANSLATION_DEFAULT_LANGUAGE
        ),
        context_manager=ContextManager(
            max_messages=settings.CONTEXT_MAX_MESSAGES,
            ttl_seconds=settings.CONTEXT_TTL_SECONDS,
            max_sessions=settings.CONTEXT_MAX_SESSIONS,
        ),
        offline_queue=OfflineQueue(capacity=settings.TRANSLATION_OFFLINE_QUEUE_CAPACITY),
        batch_concurrency=settings.TRANSLATION_BATCH_CONCURRENCY,
        queue_replay_interval_ms=settings.TRANSLATION_OFFLINE_QUEUE_REPLAY_INTERVAL_MS,
    )
    logger.info(
        f"Translation service created with providers: {', '.join(registry.names())}"
    )
    return service
