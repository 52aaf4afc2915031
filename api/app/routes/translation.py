"""Translation API endpoints for the trading platform."""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from app.core.config import Settings, get_settings
from app.core.exceptions import BatchValidationError, ProviderNotFoundError
from app.models.translation import (
    ConversationMessage,
    TranslationDomain,
    TranslationRequest,
)
from app.services.translation.translation_service import TranslationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/translation", tags=["Translation"])

MAX_TEXT_LENGTH = 5000


def get_translation_service(request: Request) -> TranslationService:
    """Get TranslationService from app state."""
    service = getattr(request.app.state, "translation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Translation service not available")
    return service


class TranslateTextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)
    source_lang: Optional[str] = Field(default=None, alias="sourceLang")
    target_lang: str = Field(alias="targetLang", min_length=2, max_length=10)
    domain: TranslationDomain = "general"
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=128)
    sender_id: Optional[str] = Field(default=None, alias="senderId", max_length=128)
    product_category: Optional[str] = Field(
        default=None, alias="productCategory", max_length=100
    )


class BatchItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)
    source_lang: Optional[str] = Field(default=None, alias="sourceLang")
    target_lang: str = Field(alias="targetLang", min_length=2, max_length=10)
    domain: TranslationDomain = "general"


class BatchTranslateRequest(BaseModel):
    requests: List[BatchItem] = Field(min_length=1)


class DetectLanguageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)


def _is_auto(source_lang: Optional[str]) -> bool:
    return not source_lang or source_lang.strip().lower() == "auto"


@router.post("/translate")
async def translate_text(
    body: TranslateTextRequest,
    service: TranslationService = Depends(get_translation_service),
):
    """Translate a single text, optionally within a conversation session."""
    if _is_auto(body.source_lang):
        source_lang = await service.detect_language(body.text)
        logger.debug(f"Auto-detected language: {source_lang}")
    else:
        source_lang = body.source_lang or ""

    message = None
    if body.session_id:
        message = ConversationMessage(
            message_id=f"msg_{uuid.uuid4().hex[:12]}",
            sender_id=body.sender_id or "anonymous",
            content=body.text,
        )

    result = await service.translate_with_context(
        TranslationRequest(
            text=body.text,
            source_lang=source_lang,
            target_lang=body.target_lang,
            domain=body.domain,
        ),
        session_id=body.session_id,
        message=message,
        product_category=body.product_category,
    )
    logger.info(
        f"Translation completed: {source_lang} -> {body.target_lang} "
        f"({result.processing_time_ms:.0f}ms)"
    )
    return {
        **result.to_api(),
        "detectedSourceLanguage": source_lang,
        "sessionId": body.session_id,
    }


@router.post("/batch")
async def batch_translate(
    body: BatchTranslateRequest,
    service: TranslationService = Depends(get_translation_service),
    settings: Settings = Depends(get_settings),
):
    """Translate up to TRANSLATION_BATCH_MAX_SIZE texts in one call.

    Every item is validated first; any invalid item rejects the whole batch
    with per-index details. Provider failures never fail the batch.
    """
    max_size = settings.TRANSLATION_BATCH_MAX_SIZE
    if len(body.requests) > max_size:
        raise BatchValidationError(
            [{"index": None, "error": f"Batch size cannot exceed {max_size} requests"}]
        )

    prepared: List[TranslationRequest] = []
    errors: List[Dict[str, Any]] = []
    for index, item in enumerate(body.requests):
        if _is_auto(item.source_lang):
            source_lang = await service.detect_language(item.text)
        else:
            source_lang = service.language_support.normalize_language_code(
                item.source_lang or ""
            )
        target_lang = service.language_support.normalize_language_code(item.target_lang)

        validation = service.language_support.validate_language_pair(
            source_lang, target_lang
        )
        if not validation.valid:
            errors.append({"index": index, "error": validation.error})
            continue
        prepared.append(
            TranslationRequest(
                text=item.text,
                source_lang=source_lang,
                target_lang=target_lang,
                domain=item.domain,
            )
        )

    if errors:
        raise BatchValidationError(errors)

    start_time = time.time()
    results = await service.batch_translate(prepared)
    total_time_ms = (time.time() - start_time) * 1000

    successful = sum(1 for r in results if r.confidence > 0)
    count = len(results)
    logger.info(f"Batch translation completed: {count} requests in {total_time_ms:.0f}ms")
    return {
        "results": [r.to_api() for r in results],
        "statistics": {
            "totalRequests": count,
            "successfulTranslations": successful,
            "failedTranslations": count - successful,
            "averageConfidence": round(sum(r.confidence for r in results) / count, 2),
            "averageProcessingTime": round(
                sum(r.processing_time_ms for r in results) / count, 2
            ),
            "totalProcessingTime": round(total_time_ms, 2),
        },
    }


@router.post("/detect")
async def detect_language(
    body: DetectLanguageRequest,
    service: TranslationService = Depends(get_translation_service),
):
    """Detect the language of a text with provider and pattern methods."""
    language_support = service.language_support
    provider_detection = await service.detect_language(body.text)
    pattern = language_support.detect_language_by_patterns(body.text)
    mixed = language_support.detect_mixed_languages(body.text)

    # Strong pattern evidence wins over the provider answer
    final = pattern.language if pattern.confidence >= 0.5 else provider_detection

    return {
        "detectedLanguage": final,
        "confidence": pattern.confidence,
        "languageName": language_support.get_language_name(final),
        "methods": {
            "provider": provider_detection,
            "pattern": pattern.language,
            "patternConfidence": pattern.confidence,
        },
        "mixedLanguages": {
            "detected": mixed.is_mixed,
            "languages": (
                [
                    {
                        "language": segment.language,
                        "confidence": segment.confidence,
                        "portion": segment.portion,
                    }
                    for segment in mixed.languages
                ]
                if mixed.is_mixed
                else []
            ),
        },
    }


@router.get("/languages")
async def get_supported_languages(
    service: TranslationService = Depends(get_translation_service),
):
    """List supported languages sorted by name."""
    languages = [
        {
            "code": code,
            "name": service.language_support.get_language_name(code),
            "supported": True,
        }
        for code in service.get_supported_languages()
    ]
    languages.sort(key=lambda entry: entry["name"])
    return {"languages": languages, "totalSupported": len(languages)}


@router.get("/health")
async def get_service_health(
    service: TranslationService = Depends(get_translation_service),
):
    """Translation health with cache, queue and context statistics."""
    health = await service.check_health()
    return {
        **health,
        "cache": service.get_cache_stats(),
        "queue": service.get_offline_queue_status(),
        "context": service.context_manager.get_context_stats(),
        "stats": service.get_stats(),
    }


@router.get("/cache/stats")
async def get_cache_stats(
    service: TranslationService = Depends(get_translation_service),
):
    return service.get_cache_stats()


@router.delete("/cache")
async def clear_cache(
    service: TranslationService = Depends(get_translation_service),
):
    await service.clear_cache()
    logger.info("Translation cache cleared via API")
    return {"message": "Translation cache cleared successfully"}


@router.get("/queue")
async def get_queue_status(
    service: TranslationService = Depends(get_translation_service),
):
    return service.get_offline_queue_status()


@router.post("/queue/process")
async def process_offline_queue(
    service: TranslationService = Depends(get_translation_service),
):
    """Replay queued requests now instead of waiting for the replay loop."""
    result = await service.process_offline_queue()
    return {**result, "queue": service.get_offline_queue_status()}


@router.get("/providers")
async def get_providers(
    service: TranslationService = Depends(get_translation_service),
):
    """Per-provider health and circuit state in fallback order."""
    health = service.fallback_manager.get_provider_health()
    return {
        "primary": service.fallback_manager.registry.primary_name,
        "providers": {name: h.to_dict() for name, h in health.items()},
        "healthy": service.fallback_manager.get_healthy_providers(),
        "stats": service.get_fallback_stats(),
    }


@router.post("/providers/{provider_name}/reset")
async def reset_provider(
    provider_name: str,
    service: TranslationService = Depends(get_translation_service),
):
    if not service.reset_circuit_breaker(provider_name):
        raise ProviderNotFoundError(provider_name)
    return {"provider": provider_name, "circuit_state": "closed"}
