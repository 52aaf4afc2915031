"""Azure AI Translator (REST v3) provider."""

import logging
import re
import time
from typing import Any, Dict, List, Optional

import httpx

from app.core.exceptions import ProviderError
from app.models.translation import (
    ProviderMetadata,
    TranslationRequest,
    TranslationResponse,
)
from app.services.translation.providers.base import (
    HTTPTranslationProvider,
    heuristic_confidence,
)

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.cognitive.microsofttranslator.com"
API_VERSION = "3.0"

CURRENCY_PATTERN = re.compile(r"[$€£¥₹]\s*\d+(?:[.,]\d+)*")
MEASUREMENT_PATTERN = re.compile(
    r"\d+(?:[.,]\d+)*\s*(?:kg|lb|g|oz|m|ft|cm|in|l|ml|gal)\b", re.IGNORECASE
)
NUMBER_PATTERN = re.compile(r"\d+(?:[.,]\d+)*")


def preserve_numerical_data(original: str, translated: str) -> str:
    """Put currency amounts and measurements from ``original`` back verbatim.

    Translators sometimes drop the currency symbol or localize a unit; when
    the bare number survived, it is replaced with the original token.
    """
    result = translated

    for currency in CURRENCY_PATTERN.findall(original):
        if currency in result:
            continue
        value = NUMBER_PATTERN.search(currency)
        if value is None:
            continue
        bare = re.compile(rf"(?<![\d.,]){re.escape(value.group(0))}(?![\d.,])")
        result = bare.sub(lambda _m: currency, result, count=1)

    for measurement in MEASUREMENT_PATTERN.findall(original):
        if measurement.lower() in result.lower():
            continue
        value = NUMBER_PATTERN.match(measurement)
        if value is None:
            continue
        localized = re.compile(rf"{re.escape(value.group(0))}\s*[^\W\d_]+")
        result = localized.sub(lambda _m: measurement, result)

    return result


class AzureTranslationProvider(HTTPTranslationProvider):
    """Translate through the v3 REST API with a subscription key and region."""

    BASE_CONFIDENCE = 0.75

    def __init__(
        self,
        subscription_key: Optional[str],
        region: str = "global",
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            endpoint,
            timeout=timeout,
            headers={
                "Ocp-Apim-Subscription-Key": subscription_key or "",
                "Ocp-Apim-Subscription-Region": region,
                "Content-Type": "application/json",
            },
            transport=transport,
        )
        self.name = "azure"
        self.subscription_key = subscription_key
        self.region = region

    def _require_key(self) -> None:
        if not self.subscription_key:
            raise ProviderError(
                self.name, "Azure Translator subscription key not configured"
            )

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        start_time = time.time()
        self._require_key()

        params: Dict[str, Any] = {
            "api-version": API_VERSION,
            "to": request.target_lang,
        }
        if request.source_lang:
            params["from"] = request.source_lang
        if request.domain in ("trade", "negotiation"):
            params["category"] = "general"

        data = await self._request(
            "POST", "/translate", params=params, json=[{"Text": request.text}]
        )
        if not isinstance(data, list) or not data:
            raise ProviderError(self.name, "Invalid response from Azure Translator")

        result = data[0]
        translations = result.get("translations") or []
        if not translations:
            raise ProviderError(self.name, "No translations returned from Azure Translator")

        translated = preserve_numerical_data(request.text, translations[0]["text"])
        detected = result.get("detectedLanguage") or {}
        detection_score = detected.get("score")

        processing_time_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Azure translation completed: {request.source_lang} -> "
            f"{request.target_lang} in {processing_time_ms:.0f}ms"
        )
        return TranslationResponse(
            translated_text=translated,
            confidence=heuristic_confidence(
                request.text,
                base=self.BASE_CONFIDENCE,
                context=request.context,
                history_bonus=0.03,
                trade_bonus=0.02,
                detection_score=detection_score,
            ),
            detected_language=detected.get("language") or request.source_lang or None,
            alternatives=[t["text"] for t in translations[1:]],
            processing_time_ms=processing_time_ms,
            metadata=ProviderMetadata(
                model=params.get("category"),
                detected_language_score=detection_score,
                extra={"region": self.region},
            ),
        )

    async def detect_language(self, text: str) -> str:
        self._require_key()
        data = await self._request(
            "POST", "/detect", params={"api-version": API_VERSION}, json=[{"Text": text}]
        )
        if not isinstance(data, list) or not data:
            raise ProviderError(self.name, "Invalid response from Azure language detection")
        return data[0].get("language") or "unknown"

    async def get_supported_languages(self) -> List[str]:
        try:
            data = await self._request(
                "GET",
                "/languages",
                params={"api-version": API_VERSION, "scope": "translation"},
            )
            return list(data["translation"])
        except ProviderError as e:
            return self._fallback_languages(e)
        except (KeyError, TypeError) as e:
            return self._fallback_languages(
                ProviderError(self.name, f"Malformed languages response: {e}")
            )
