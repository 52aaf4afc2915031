"""Translation provider contract and shared HTTP plumbing."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from app.core.exceptions import ProviderError
from app.models.translation import (
    ConversationContext,
    TranslationRequest,
    TranslationResponse,
)
from app.services.translation.language_support import SUPPORTED_LANGUAGES

logger = logging.getLogger(__name__)

_SPECIAL_CHARS = re.compile(r"[^\w\s]")


class TranslationProvider(ABC):
    """A named external translation backend.

    Implementations raise ProviderError on network, auth and quota problems
    so the fallback manager can record the failure and move on.
    """

    name: str

    @abstractmethod
    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        """Translate ``request.text`` from ``source_lang`` to ``target_lang``."""

    @abstractmethod
    async def detect_language(self, text: str) -> str:
        """Return the provider's language code for ``text``."""

    @abstractmethod
    async def get_supported_languages(self) -> List[str]:
        """Return the language codes the provider can translate."""

    async def aclose(self) -> None:
        """Release network resources. Providers without any keep the default."""


def heuristic_confidence(
    text: str,
    base: float,
    context: Optional[ConversationContext],
    history_bonus: float,
    trade_bonus: float,
    detection_score: Optional[float] = None,
) -> float:
    """Estimate translation confidence from the shape of the source text.

    Providers do not return a confidence for translations, so each adapter
    starts from its own base and adjusts for length, conversation history,
    trade context, numbers and punctuation. Result is clamped to [0.1, 1.0].
    """
    confidence = base
    if len(text) > 100:
        confidence += 0.05
    elif len(text) < 10:
        confidence -= 0.1

    if context is not None and context.previous_messages:
        confidence += history_bonus

    if detection_score is not None:
        confidence *= 0.7 + 0.3 * detection_score

    if context is not None and (
        context.product_category is not None or context.negotiation_phase is not None
    ):
        confidence += trade_bonus

    if any(ch.isdigit() for ch in text):
        confidence += 0.02
    if _SPECIAL_CHARS.search(text):
        confidence -= 0.02

    return max(0.1, min(1.0, confidence))


class HTTPTranslationProvider(TranslationProvider):
    """Base for providers talking to a REST API through a pooled httpx client."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self.headers,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            ProviderError: On transport errors, non-2xx responses or bad JSON.
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, params=params, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.name,
                f"HTTP {e.response.status_code}: {self._error_message(e.response)}",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON response: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return response.reason_phrase

    def _fallback_languages(self, error: ProviderError) -> List[str]:
        logger.warning(
            f"Failed to fetch {self.name} supported languages, using defaults: {error}"
        )
        return list(SUPPORTED_LANGUAGES)

    async def aclose(self) -> None:
        """Close the HTTP client and clean up resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info(f"{self.name} provider HTTP client closed")
