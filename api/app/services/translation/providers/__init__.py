"""Translation provider adapters."""

from app.services.translation.providers.azure import AzureTranslationProvider
from app.services.translation.providers.base import (
    HTTPTranslationProvider,
    TranslationProvider,
)
from app.services.translation.providers.google import GoogleTranslationProvider
from app.services.translation.providers.mock import MockTranslationProvider

__all__ = [
    "AzureTranslationProvider",
    "GoogleTranslationProvider",
    "HTTPTranslationProvider",
    "MockTranslationProvider",
    "TranslationProvider",
]
