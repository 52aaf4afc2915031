"""Deterministic in-process provider for local development and tests."""

import asyncio
import logging
from typing import List

from app.core.exceptions import ProviderError
from app.models.translation import (
    ProviderMetadata,
    TranslationRequest,
    TranslationResponse,
)
from app.services.translation.providers.base import TranslationProvider

logger = logging.getLogger(__name__)


class MockTranslationProvider(TranslationProvider):
    """Prefixes text with the upper-cased target code, e.g. ``[ES] hello``.

    Latency and failures can be injected to exercise fallback behaviour:
    ``fail_next(n)`` makes the next ``n`` translate calls fail, ``set_healthy``
    toggles whether every call (including detection probes) fails.
    """

    SUPPORTED = ["en", "es", "fr", "de", "hi", "zh", "ar", "pt", "ru", "ja"]

    DETECTION_HINTS = {
        "es": ("hola", "gracias"),
        "fr": ("bonjour", "merci"),
        "de": ("guten", "danke"),
        "hi": ("namaste", "dhanyawad"),
    }

    def __init__(
        self,
        name: str = "mock",
        latency_s: float = 0.0,
        confidence: float = 0.95,
        healthy: bool = True,
    ):
        self.name = name
        self.latency_s = latency_s
        self.confidence = confidence
        self.healthy = healthy
        self._pending_failures = 0
        self.translate_calls = 0
        self.detect_calls = 0

    def set_healthy(self, healthy: bool) -> None:
        self.healthy = healthy

    def fail_next(self, count: int = 1) -> None:
        self._pending_failures += count

    def _check_failure(self, operation: str) -> None:
        if not self.healthy:
            raise ProviderError(self.name, f"{operation} unavailable")

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        self.translate_calls += 1
        logger.debug(
            f"Mock translation ({self.name}): {request.source_lang} -> {request.target_lang}"
        )
        if self.latency_s:
            await asyncio.sleep(self.latency_s)
        self._check_failure("translate")
        if self._pending_failures > 0:
            self._pending_failures -= 1
            raise ProviderError(self.name, "injected failure")

        target = request.target_lang.upper()
        return TranslationResponse(
            translated_text=f"[{target}] {request.text}",
            confidence=self.confidence,
            detected_language=request.source_lang or None,
            alternatives=[f"[ALT-{target}] {request.text}"],
            processing_time_ms=self.latency_s * 1000,
            metadata=ProviderMetadata(model="mock"),
        )

    async def detect_language(self, text: str) -> str:
        self.detect_calls += 1
        self._check_failure("detect")
        lowered = text.lower()
        for language, hints in self.DETECTION_HINTS.items():
            if any(hint in lowered for hint in hints):
                return language
        return "en"

    async def get_supported_languages(self) -> List[str]:
        return list(self.SUPPORTED)

