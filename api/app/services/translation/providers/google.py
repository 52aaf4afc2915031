"""Google Cloud Translation (REST v2) provider."""

import logging
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
from app.services.translation.trade_terminology import TradeTerminology

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://translation.googleapis.com"


class GoogleTranslationProvider(HTTPTranslationProvider):
    """Translate through the v2 REST API authenticated with an API key.

    Trade and negotiation conversations get curated terminology: known terms
    are replaced by placeholders before the call and by the dictionary
    translation afterwards.
    """

    API_PATH = "/language/translate/v2"
    BASE_CONFIDENCE = 0.8

    def __init__(
        self,
        api_key: Optional[str],
        project_id: Optional[str] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 10.0,
        terminology: Optional[TradeTerminology] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(endpoint, timeout=timeout, transport=transport)
        self.name = "google"
        self.api_key = api_key
        self.project_id = project_id
        self.terminology = terminology or TradeTerminology()

    def _params(self) -> Dict[str, str]:
        if not self.api_key:
            raise ProviderError(self.name, "Google Translate API key not configured")
        return {"key": self.api_key}

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        start_time = time.time()
        params = self._params()

        text = request.text
        placeholder_map: Dict[str, str] = {}
        if self.terminology.applies_to(request.context):
            text, placeholder_map = self.terminology.protect_terms(
                text, request.source_lang, request.target_lang
            )

        body: Dict[str, Any] = {
            "q": text,
            "target": request.target_lang,
            "format": "text",
        }
        if request.source_lang:
            body["source"] = request.source_lang
        if request.domain in ("trade", "negotiation"):
            body["model"] = "base"

        data = await self._request("POST", self.API_PATH, params=params, json=body)
        try:
            translation = data["data"]["translations"][0]
            translated = translation["translatedText"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "Malformed translation response") from e

        if placeholder_map:
            translated = self.terminology.restore_terms(translated, placeholder_map)

        processing_time_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Google translation completed: {request.source_lang} -> "
            f"{request.target_lang} in {processing_time_ms:.0f}ms"
        )
        return TranslationResponse(
            translated_text=translated,
            confidence=heuristic_confidence(
                request.text,
                base=self.BASE_CONFIDENCE,
                context=request.context,
                history_bonus=0.05,
                trade_bonus=0.05,
            ),
            detected_language=(
                translation.get("detectedSourceLanguage") or request.source_lang or None
            ),
            alternatives=[],
            processing_time_ms=processing_time_ms,
            metadata=ProviderMetadata(
                model=translation.get("model") or body.get("model"),
                terminology_applied=bool(placeholder_map),
            ),
        )

    async def detect_language(self, text: str) -> str:
        data = await self._request(
            "POST", f"{self.API_PATH}/detect", params=self._params(), json={"q": text}
        )
        try:
            detections = data["data"]["detections"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "Malformed detection response") from e
        if isinstance(detections, dict):
            detections = [detections]
        if not detections:
            return "unknown"
        return detections[0].get("language") or "unknown"

    async def get_supported_languages(self) -> List[str]:
        try:
            data = await self._request(
                "GET", f"{self.API_PATH}/languages", params=self._params()
            )
            return [entry["language"] for entry in data["data"]["languages"]]
        except ProviderError as e:
            return self._fallback_languages(e)
        except (KeyError, TypeError) as e:
            return self._fallback_languages(
                ProviderError(self.name, f"Malformed languages response: {e}")
            )
