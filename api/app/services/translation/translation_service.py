"""Translation service for the multilingual trading platform.

Orchestrates context enrichment, language detection, caching, provider
fallback and the offline queue. Callers should use this facade rather than
the individual components.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from app.core.exceptions import (
    AllProvidersFailedError,
    LanguagePairError,
    ValidationError,
)
from app.metrics.translation_metrics import (
    batch_requests_total,
    translation_errors_total,
    translation_operation_duration_seconds,
)
from app.models.translation import (
    ConversationMessage,
    TranslationRequest,
    TranslationResponse,
)
from app.services.translation.cache import TranslationCache
from app.services.translation.context_manager import ContextManager
from app.services.translation.fallback_manager import CircuitState, FallbackManager
from app.services.translation.language_support import LanguageSupport
from app.services.translation.offline_queue import OfflineQueue
from app.utils.scheduling import PeriodicTask

logger = logging.getLogger(__name__)


class TranslationService:
    """Main orchestrator for translation requests.

    Flow:
    1. Enrich the request with conversation context (when a session is given)
    2. Detect the source language if it is unset or "auto"
    3. Validate the language pair
    4. Serve from cache, otherwise translate through the fallback manager
    5. On total provider outage, fall back to cache, then queue the request

    Features:
    - Per-provider circuit breakers and health checks
    - Multi-tier caching (L1 + L3)
    - Bounded offline queue with periodic replay
    - Batch translation with a fixed concurrency window
    """

    AUTO_DETECT = "auto"

    def __init__(
        self,
        fallback_manager: FallbackManager,
        cache: TranslationCache,
        language_support: Optional[LanguageSupport] = None,
        context_manager: Optional[ContextManager] = None,
        offline_queue: Optional[OfflineQueue] = None,
        batch_concurrency: int = 5,
        queue_replay_interval_ms: int = 0,
    ):
        """Initialize the TranslationService.

        Args:
            fallback_manager: Provider registry with circuit breakers.
            cache: Translation cache shared with the fallback manager.
            language_support: Pair validation and offline detection.
            context_manager: Session context store for context-aware requests.
            offline_queue: Queue absorbing requests during total outages.
            batch_concurrency: Concurrent translate calls per batch window.
            queue_replay_interval_ms: Offline queue replay period; 0 disables.
        """
        if batch_concurrency < 1:
            raise ValueError("batch_concurrency must be at least 1")

        self.fallback_manager = fallback_manager
        self.cache = cache
        self.language_support = language_support or LanguageSupport()
        self.context_manager = context_manager or ContextManager()
        self.offline_queue = offline_queue or OfflineQueue()
        self.batch_concurrency = batch_concurrency
        self.queue_replay_interval_ms = queue_replay_interval_ms
        self._replay_task: Optional[PeriodicTask] = None

        # Statistics
        self.stats = {
            "requests": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "translations_performed": 0,
            "emergency_cache_hits": 0,
            "queued_requests": 0,
            "translation_errors": 0,
        }

    # Lifecycle

    def start(self) -> None:
        """Start provider health checks and the offline queue replay loop."""
        self.fallback_manager.start()
        if self.queue_replay_interval_ms > 0 and self._replay_task is None:
            self._replay_task = PeriodicTask(
                "translation-offline-queue",
                self.queue_replay_interval_ms / 1000,
                self._replay_offline_queue,
            )
            self._replay_task.start()
        logger.info("Translation service started")

    async def stop(self) -> None:
        """Stop background loops and close provider clients."""
        if self._replay_task is not None:
            await self._replay_task.stop()
            self._replay_task = None
        await self.fallback_manager.aclose()
        logger.info("Translation service stopped")

    # Translation

    def _validate(self, request: TranslationRequest) -> None:
        if not request.text.strip():
            raise ValidationError("Text to translate must not be empty", field="text")
        validation = self.language_support.validate_language_pair(
            request.source_lang, request.target_lang
        )
        if not validation.valid:
            raise LanguagePairError(validation.error or "Invalid language pair")

    async def translate_with_context(
        self,
        request: TranslationRequest,
        session_id: Optional[str] = None,
        message: Optional[ConversationMessage] = None,
        product_category: Optional[str] = None,
    ) -> TranslationResponse:
        """Translate with conversation context and source auto-detection.

        Raises:
            ValidationError: If the text is empty or the language pair invalid.
            AllProvidersFailedError: If every provider and the cache failed;
                the request is queued for replay.
        """
        if session_id:
            request = self.context_manager.enhance_translation_request(
                request, session_id, message=message, product_category=product_category
            )

        source_lang = (request.source_lang or "").strip().lower()
        if source_lang in ("", self.AUTO_DETECT):
            source_lang = await self.detect_language(request.text)
        else:
            source_lang = self.language_support.normalize_language_code(source_lang)
        target_lang = self.language_support.normalize_language_code(request.target_lang)

        request = request.model_copy(
            update={"source_lang": source_lang, "target_lang": target_lang}
        )
        self._validate(request)
        return await self.translate(request)

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        """Translate a request whose language codes are already final.

        Raises:
            ValidationError: Never queued, never retried.
            AllProvidersFailedError: After the request has been queued.
        """
        return await self._translate(request, queue_on_failure=True)

    async def _translate(
        self, request: TranslationRequest, queue_on_failure: bool
    ) -> TranslationResponse:
        start_time = time.perf_counter()
        self.stats["requests"] += 1
        try:
            try:
                self._validate(request)
            except ValidationError:
                translation_errors_total.labels(
                    operation="translate", error_type="validation"
                ).inc()
                raise

            cache_key = self.cache.generate_cache_key(request)
            cached = await self.cache.get_cached_translation(cache_key)
            if cached is not None:
                self.stats["cache_hits"] += 1
                return cached.model_copy(
                    update={
                        "processing_time_ms": (time.perf_counter() - start_time) * 1000
                    }
                )
            self.stats["cache_misses"] += 1

            try:
                result = await self.fallback_manager.translate_with_fallback(request)
            except AllProvidersFailedError:
                self.stats["translation_errors"] += 1
                translation_errors_total.labels(
                    operation="translate", error_type="providers_exhausted"
                ).inc()

                cached = await self.cache.get_cached_translation(cache_key)
                if cached is not None:
                    self.stats["emergency_cache_hits"] += 1
                    logger.info("Serving emergency cached translation after outage")
                    return cached.model_copy(update={"processing_time_ms": 0.0})

                if queue_on_failure:
                    self.offline_queue.enqueue(request)
                    self.stats["queued_requests"] += 1
                    logger.warning(
                        f"Queued {request.source_lang}->{request.target_lang} request "
                        f"for replay (queue size: {self.offline_queue.size})"
                    )
                raise

            self.stats["translations_performed"] += 1
            return result
        finally:
            translation_operation_duration_seconds.labels(operation="translate").observe(
                max(0.0, time.perf_counter() - start_time)
            )

    async def detect_language(self, text: str) -> str:
        """Detect the language of ``text``. Never raises.

        The primary provider is asked first (unless its circuit is open);
        unsupported or failed answers fall back to pattern detection, and
        anything else yields the default language.
        """
        start_time = time.perf_counter()
        try:
            primary = self.fallback_manager.primary_provider
            if primary is not None and self._provider_available(primary.name):
                try:
                    detected = await asyncio.wait_for(
                        primary.detect_language(text),
                        timeout=self.fallback_manager.config.max_response_time_ms / 1000,
                    )
                    language = self.language_support.normalize_language_code(detected)
                    if self.language_support.is_language_supported(language):
                        return language
                    logger.debug(
                        f"Primary provider detected unsupported language '{detected}'"
                    )
                except Exception as e:
                    logger.warning(f"Primary provider language detection failed: {e}")

            try:
                return self.language_support.detect_language_by_patterns(text).language
            except Exception as e:
                logger.error(f"Pattern language detection failed: {e}", exc_info=True)
                translation_errors_total.labels(
                    operation="detect", error_type=type(e).__name__
                ).inc()
                return self.language_support.default_language
        finally:
            translation_operation_duration_seconds.labels(operation="detect").observe(
                max(0.0, time.perf_counter() - start_time)
            )

    def _provider_available(self, name: str) -> bool:
        health = self.fallback_manager.health.get(name)
        return health is not None and health.circuit_state != CircuitState.OPEN

    @staticmethod
    def _degraded(request: TranslationRequest) -> TranslationResponse:
        return TranslationResponse(
            translated_text=request.text, confidence=0.0, processing_time_ms=0.0
        )

    async def batch_translate(
        self, requests: List[TranslationRequest]
    ) -> List[TranslationResponse]:
        """Translate many requests; ``results[i]`` always answers ``requests[i]``.

        Cache hits are resolved concurrently up front. The rest run in windows
        of ``batch_concurrency`` concurrent translate calls. A failing item
        becomes a degraded result (original text, confidence 0) instead of
        failing the batch.
        """
        start_time = time.perf_counter()
        results: List[Optional[TranslationResponse]] = [None] * len(requests)

        cached = await asyncio.gather(
            *(
                self.cache.get_cached_translation(self.cache.generate_cache_key(r))
                for r in requests
            )
        )
        pending: List[int] = []
        for index, hit in enumerate(cached):
            if hit is not None:
                results[index] = hit
                batch_requests_total.labels(result="cached").inc()
            else:
                pending.append(index)

        for offset in range(0, len(pending), self.batch_concurrency):
            window = pending[offset : offset + self.batch_concurrency]
            outcomes = await asyncio.gather(
                *(self.translate(requests[i]) for i in window),
                return_exceptions=True,
            )
            for index, outcome in zip(window, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.warning(f"Batch item {index} failed: {outcome}")
                    results[index] = self._degraded(requests[index])
                    batch_requests_total.labels(result="degraded").inc()
                else:
                    results[index] = outcome
                    batch_requests_total.labels(result="translated").inc()

        translation_operation_duration_seconds.labels(operation="batch").observe(
            max(0.0, time.perf_counter() - start_time)
        )
        return [
            result if result is not None else self._degraded(requests[index])
            for index, result in enumerate(results)
        ]

    # Offline queue

    async def process_offline_queue(self) -> Dict[str, int]:
        """Retry every queued request once; failures go back on the queue."""
        pending = self.offline_queue.drain()
        if not pending:
            return {"processed": 0, "failed": 0}

        logger.info(f"Processing {len(pending)} queued translation requests")
        processed = 0
        failed = 0
        for offset in range(0, len(pending), self.batch_concurrency):
            window = pending[offset : offset + self.batch_concurrency]
            outcomes = await asyncio.gather(
                *(self._translate(r, queue_on_failure=False) for r in window),
                return_exceptions=True,
            )
            for request, outcome in zip(window, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    failed += 1
                    self.offline_queue.enqueue(request)
                else:
                    processed += 1

        logger.info(
            f"Offline queue processed: {processed} succeeded, {failed} re-queued"
        )
        return {"processed": processed, "failed": failed}

    async def _replay_offline_queue(self) -> None:
        if len(self.offline_queue) == 0:
            return
        if not self.fallback_manager.get_healthy_providers():
            logger.debug("Skipping offline queue replay - no healthy providers")
            return
        await self.process_offline_queue()

    def get_offline_queue_status(self) -> Dict[str, Any]:
        return {
            "queue_size": self.offline_queue.size,
            "capacity": self.offline_queue.capacity,
            "dropped": self.offline_queue.dropped,
            "is_online": bool(self.fallback_manager.get_healthy_providers()),
        }

    # Health and administration

    async def check_health(self) -> Dict[str, Any]:
        """Aggregate provider health, cache reachability and queue size.

        Status is ``healthy`` when every provider is up and the cache answers,
        ``unhealthy`` when no provider is healthy, ``degraded`` otherwise.
        """
        providers = {
            name: health.is_healthy
            for name, health in self.fallback_manager.get_provider_health().items()
        }
        cache_available = await self.cache.ping()

        healthy_count = sum(1 for up in providers.values() if up)
        if healthy_count == 0:
            status = "unhealthy"
        elif healthy_count == len(providers) and cache_available:
            status = "healthy"
        else:
            status = "degraded"

        return {
            "status": status,
            "providers": providers,
            "cache_available": cache_available,
            "queue_size": self.offline_queue.size,
            "fallback_stats": self.fallback_manager.get_stats(),
        }

    def is_language_supported(self, language_code: str) -> bool:
        return self.language_support.is_language_supported(language_code)

    def get_supported_languages(self) -> List[str]:
        return self.language_support.get_supported_languages()

    async def clear_cache(self) -> None:
        await self.cache.clear_cache()

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_cache_stats()

    def get_fallback_stats(self) -> Dict[str, Any]:
        return self.fallback_manager.get_stats()

    def reset_circuit_breaker(self, provider_name: str) -> bool:
        return self.fallback_manager.reset_circuit_breaker(provider_name)

    def get_stats(self) -> Dict[str, Any]:
        """Service counters plus cache hit ratio."""
        total_cache = self.stats["cache_hits"] + self.stats["cache_misses"]
        return {
            **self.stats,
            "cache_hit_ratio": (
                self.stats["cache_hits"] / total_cache if total_cache > 0 else 0
            ),
            "queue": self.get_offline_queue_status(),
            "context": self.context_manager.get_context_stats(),
        }
